"""OpsLink Hosting - order-to-provisioning backend."""

__version__ = "1.0.0"
