"""Vector store module for the RAG chat service.

Provides token-aware chunking, OpenAI embedding generation, and ChromaDB
storage for uploaded document chunks and structured rows.
"""
