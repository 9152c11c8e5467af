from .cache import LocalOrderCache
from .engine import OrderSyncEngine
from .scheduler import Scheduler
from .store import RemoteOrderStore, SubscriptionHandle
from .subscription import ChangeSubscriptionManager, ConnectionStatus

__all__ = [
    'ChangeSubscriptionManager',
    'ConnectionStatus',
    'LocalOrderCache',
    'OrderSyncEngine',
    'RemoteOrderStore',
    'Scheduler',
    'SubscriptionHandle',
]
