"""HTTP API. The application lives in `elan.api.app`."""
