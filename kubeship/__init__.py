"""kubeship: build, expose and roll out a container image on Kubernetes."""

__version__ = "0.1.0"
