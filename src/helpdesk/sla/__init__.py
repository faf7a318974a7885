"""
SLA Module
==========

Bounded Context for helpdesk Service Level Agreement tracking.

Responsibilities:
- Resolve the SLA policy of a ticket from its organization and priority
- Compute first-response, next-response and resolution due dates in
  business or calendar time
- Run the per-ticket SLA clock (pause, resume, outcomes, status)
- Mirror SLA status and breach flags onto the ticket
- Reconcile drifted SLA state in a periodic background sweep
- Hot-reload status thresholds from sla_config.yaml
"""

__version__ = "1.0.0"
