"""
Approval Workflow Kernel

Template/instance approval workflows for staffing back-office batches
(payroll, invoices, timesheets, expenses, compliance, purchase orders):
- Reusable multi-step templates with skip and auto-approval conditions
- Parallel steps with all / any / majority quorum and required approvers
- Escalation rules driven by elapsed active time
- Single-writer mutation per instance with published workflow events
"""

__version__ = "0.1.0"
