"""Backend Routers."""
