"""Content access adapters layered on backend streams."""
