from apps import api

from apps.api import (app,)

__all__ = ['api', 'app']
