"""DriveWatch Core - SMART drive health analysis, history and alerting"""

__version__ = "1.0.0"
