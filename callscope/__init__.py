"""callscope: static call-graph extraction and analysis for Rust projects."""

__version__ = "0.3.0"
