"""
v5_deploy — build-and-deploy pipeline for VEX V5 firmware images.

ELF executable → flat binary → project.pros descriptor → prosv5 upload.
"""

__version__ = "0.1.0"
PACKAGE_NAME = "v5_deploy"
