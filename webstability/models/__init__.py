from .projects import Project as Project
from .change_requests import ChangeRequest as ChangeRequest
from .feedback import FeedbackEntry as FeedbackEntry
from .messages import ChatMessage as ChatMessage
from .payments import PaymentConfirmation as PaymentConfirmation
