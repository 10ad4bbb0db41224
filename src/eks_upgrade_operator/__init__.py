"""Resumable EKS control plane, add-on, and node group upgrade operator."""

__version__ = "0.1.0"
