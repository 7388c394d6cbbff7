"""FastAPI chat service, session history, and the RAG request pipeline."""
