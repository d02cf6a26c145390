"""Capture device and orientation sensor inputs."""
