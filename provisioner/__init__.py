"""Debian host provisioner: SSH-driven installers and an EC2 lifecycle helper."""

__version__ = "0.4.0"
