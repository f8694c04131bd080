"""
Validation pipeline: job lifecycle, the per-requirement graph, the validation
loop and the orchestrator exposing the external triggers.

Import submodules directly (``assessment_validator.pipeline.orchestrator``);
the services layer imports ``pipeline.prompts`` while it initializes.
"""
