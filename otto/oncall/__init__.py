"""
OnCall Module
=============

On-call rotations, acknowledgements and automatic escalation.

Layers:
- domain: entities, status transitions, slash command tokenizer
- application: OnCallService, EscalationSweeper, repository interfaces
- infrastructure: SQLAlchemy models/repositories, config watcher, scheduler
- interfaces: OnCallModule (webhook event routing)
"""
