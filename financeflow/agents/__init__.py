"""AI Agents package."""

from financeflow.agents.ai_agents import (
    FinanceAssistant,
    FinancialChat,
    load_receipt_image,
    receipt_data_url,
)

__all__ = [
    "FinanceAssistant",
    "FinancialChat",
    "load_receipt_image",
    "receipt_data_url",
]
