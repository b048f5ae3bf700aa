"""Pipeline orchestration: stage controller, resume trigger, deletion.

Modules:
    - budget.py           -- per-invocation time budget, progress interpolation
    - stage_controller.py -- the ingestion state machine
    - resume_trigger.py   -- re-entry from persisted checkpoints
    - deletion.py         -- blob, metadata and vector cleanup
"""
