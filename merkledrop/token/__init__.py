from merkledrop.token.ledger import InMemoryTokenLedger, TokenLedger

__all__ = ["InMemoryTokenLedger", "TokenLedger"]
