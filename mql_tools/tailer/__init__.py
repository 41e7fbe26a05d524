"""Runtime log tailing for MetaTrader terminals."""

from mql_tools.tailer.data_folder import DataFolderInference, detect_flavor, infer_data_folder
from mql_tools.tailer.session import ChangeKind, TailChange, TailSession
from mql_tools.tailer.tailer import (
    STOP_MARKER,
    DeployChoice,
    LogTailer,
    TailerState,
    log_file_name,
    resolve_base_path,
)

__all__ = [
    "STOP_MARKER",
    "ChangeKind",
    "DataFolderInference",
    "DeployChoice",
    "LogTailer",
    "TailChange",
    "TailSession",
    "TailerState",
    "detect_flavor",
    "infer_data_folder",
    "log_file_name",
    "resolve_base_path",
]
