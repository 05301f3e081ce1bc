# =============================================================================
# Quality-Gated Pipeline Shared Libraries
# =============================================================================
# This package contains the framework-free core of the orchestrator.
# See individual sub-packages for detailed documentation.
# =============================================================================

"""
Quality-gated pipeline shared libraries.

Sub-packages:
- models: Pydantic data models and settings
- quality: Quality gate and ruleset loading
- orchestration: Run state machine, scheduler and collaborator contracts
"""

__version__ = "0.1.0"
