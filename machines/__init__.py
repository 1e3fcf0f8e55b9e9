from .base import Machine, MachineState, EngineSettings
from .tape_machine import Instruction, Tape, TapeMachine, compile_graph
from .graph_machine import GraphWalkingMachine

__all__ = [
    'Machine', 'MachineState', 'EngineSettings',
    'Instruction', 'Tape', 'TapeMachine', 'compile_graph',
    'GraphWalkingMachine',
]
