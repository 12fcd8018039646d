"""HTTP API: health and admin routers."""
