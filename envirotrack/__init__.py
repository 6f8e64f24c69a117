"""EnviroTrack backend: Flask API for environmental consulting projects, clearances and invoicing."""
