from .simulator import Tick, TickSimulator  # re-export
