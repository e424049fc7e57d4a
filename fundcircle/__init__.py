"""Fund Circle: deposits, loan requests and waiver-split loans for a small savings circle."""
