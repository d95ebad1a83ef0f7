"""
webstability: backend-of-record for the client-delivery workflow.

This package owns the project lifecycle: intake, design and feedback rounds,
payment, domain/email setup and the live maintenance phase, plus the ledger
of change requests clients submit once their site is live.

Data model: Project (aggregate root) with ChangeRequest, FeedbackEntry,
ChatMessage and PaymentConfirmation children. Everything is scoped by the
client-facing project_id code.
"""
