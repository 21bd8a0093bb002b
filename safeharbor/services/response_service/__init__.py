"""Response Service: assembles every reply through the safety pipeline.

Components:
- assembler.py: TurnContext, stage functions and ResponseAssembler
- sessions.py: SessionState and the SessionRegistry busy guard
- generator.py: baseline generator interface
- verification.py: final verification net
- handler.py: FastAPI app (create_app, run_server)

The HTTP handler is not imported here so the pipeline can be used without
the web stack loaded.
"""

from .assembler import STAGES, PipelineServices, ResponseAssembler, TurnContext
from .config import PipelineConfig
from .generator import CallableResponseGenerator, ReflectiveResponseGenerator, ResponseGenerator
from .sessions import SessionRegistry, SessionState
from .verification import FinalVerifier, VerificationResult

__all__ = [
    "STAGES",
    "PipelineServices",
    "ResponseAssembler",
    "TurnContext",
    "PipelineConfig",
    "CallableResponseGenerator",
    "ReflectiveResponseGenerator",
    "ResponseGenerator",
    "SessionRegistry",
    "SessionState",
    "FinalVerifier",
    "VerificationResult",
]
