from .recorder import EquityHistoryRecorder  # re-export
