"""
Retriever - Grounded Question Answering over Ingested Documents

Key Components:
- Retriever: Ranks one document's chunks by vector similarity or keyword hits
- Synthesizer: Builds numbered context and prompts the generative model
- ChatLog: Per-document conversation history

Pipeline:
1. Embed the question (vector mode) and rank the document's chunks
2. Number the top chunks into a context block
3. Generate an answer, findings or structured data from that context
4. Record the exchange in the chat log
"""

from .chat_log import ChatLog
from .searcher import RetrievalResult, Retriever, cosine_similarity
from .synthesizer import AnalystAnswer, Synthesizer

__all__ = [
    "ChatLog",
    "RetrievalResult",
    "Retriever",
    "cosine_similarity",
    "AnalystAnswer",
    "Synthesizer",
]
