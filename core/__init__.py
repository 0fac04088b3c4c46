from core import config
from core import exceptions
from core import timeutils

from core.config import (AccessConfig, get_access_config, reset_access_config,)
from core.exceptions import (AccessControlError, ForbiddenActorError,
                             InvalidStateError, InvalidTargetError,
                             NotFoundError, StorageUnavailableError,
                             ValidationError,)
from core.timeutils import (normalize, utcnow,)

__all__ = ['AccessConfig', 'AccessControlError', 'ForbiddenActorError',
           'InvalidStateError', 'InvalidTargetError', 'NotFoundError',
           'StorageUnavailableError', 'ValidationError', 'config',
           'exceptions', 'get_access_config', 'normalize',
           'reset_access_config', 'timeutils', 'utcnow']
