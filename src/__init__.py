"""Infrastructure Layer.

Adapters that bind the domain core to GDAL/OGR: the runtime entry point,
handle-backed wrappers for datasets, bands, layers, features and geometries,
and settings loaded from the environment.
"""
