from apps.api import main

from apps.api.main import (app, health_check,)

__all__ = ['app', 'health_check', 'main']
