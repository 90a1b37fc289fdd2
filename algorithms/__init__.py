from .math_tools import MathTools
from .weight_converter import UnitConverter
from .record_detection import RecordUpdate, detect_records
from .session_decomposer import MultiClientSession, decompose_session

__all__ = [
    "MathTools",
    "UnitConverter",
    "RecordUpdate",
    "detect_records",
    "MultiClientSession",
    "decompose_session",
]
