from hearth._classifier import Category as Category, ClassifiedRequest as ClassifiedRequest, Classifier as Classifier
from hearth._config import (
    EngineConfig as EngineConfig,
    Tier as Tier,
    get_default_settings as get_default_settings,
    load_config as load_config,
    store_name as store_name,
)
from hearth._control import AsyncControlChannel as AsyncControlChannel, CommandType as CommandType
from hearth._core._headers import Headers as Headers
from hearth._core.models import (
    Entry as Entry,
    EntryMeta as EntryMeta,
    Request as Request,
    RequestMetadata as RequestMetadata,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)
from hearth._exceptions import (
    ControlChannelError as ControlChannelError,
    HearthError as HearthError,
    InstallError as InstallError,
    LifecycleError as LifecycleError,
    NetworkError as NetworkError,
    StoreError as StoreError,
)
from hearth._host import AsyncOfflineHost as AsyncOfflineHost
from hearth._lifecycle import LifecycleManager as LifecycleManager, LifecycleState as LifecycleState
from hearth._offline import synthesize_offline_response as synthesize_offline_response
from hearth._policies import (
    DEFAULT_POLICY as DEFAULT_POLICY,
    Fallback as Fallback,
    PolicyRule as PolicyRule,
    Strategy as Strategy,
)
from hearth._proxy import AsyncOfflineProxy as AsyncOfflineProxy
from hearth._storages import (
    AsyncBaseRegistry as AsyncBaseRegistry,
    AsyncBaseStore as AsyncBaseStore,
    AsyncFileRegistry as AsyncFileRegistry,
    AsyncInMemoryRegistry as AsyncInMemoryRegistry,
    AsyncSqliteRegistry as AsyncSqliteRegistry,
)

__all__ = (
    ## Models
    "Request",
    "Response",
    "Entry",
    "EntryMeta",
    "RequestMetadata",
    "ResponseMetadata",
    ## Headers
    "Headers",
    ## Configuration
    "EngineConfig",
    "Tier",
    "get_default_settings",
    "load_config",
    "store_name",
    ## Classification and policy
    "Category",
    "ClassifiedRequest",
    "Classifier",
    "DEFAULT_POLICY",
    "Fallback",
    "PolicyRule",
    "Strategy",
    "synthesize_offline_response",
    ## Storages
    "AsyncBaseRegistry",
    "AsyncBaseStore",
    "AsyncFileRegistry",
    "AsyncInMemoryRegistry",
    "AsyncSqliteRegistry",
    ## Engine
    "AsyncOfflineProxy",
    "AsyncOfflineHost",
    "AsyncControlChannel",
    "CommandType",
    "LifecycleManager",
    "LifecycleState",
    ## Errors
    "HearthError",
    "InstallError",
    "StoreError",
    "NetworkError",
    "LifecycleError",
    "ControlChannelError",
)
