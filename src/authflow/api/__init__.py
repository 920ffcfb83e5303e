"""
Blueprints for authflow.

Provides:
- application_bp: login form, authentication, logout, landing page
"""
from .application import application_bp

__all__ = ['application_bp']
