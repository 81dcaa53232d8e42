"""Community chat: message tree, live reconciliation, optimistic voting."""
