"""Face authentication building blocks: protocol, framing, configuration, geometry, quality, IR emitter control and model pre/post-processing."""

__version__ = "0.1.0"