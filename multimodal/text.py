"""
Text embedding provider backed by a Hugging Face sentence encoder.
"""

import asyncio
from typing import List, Optional, Sequence

import numpy as np
import torch
from transformers import AutoModel, AutoTokenizer
import structlog

logger = structlog.get_logger()

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class TextEmbedder:
    """Mean-pooled sentence embeddings from a transformer encoder"""

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL, device: Optional[str] = None,
                 max_length: int = 256):
        self.model_name = model_name
        self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self.max_length = max_length

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(model_name)
            self.model = AutoModel.from_pretrained(model_name).to(self.device)
            self.model.eval()
            logger.info("Embedding model loaded", model=model_name, device=self.device)
        except Exception as e:
            logger.error("Failed to load embedding model", error=str(e), model=model_name)
            raise

    def encode(self, texts: Sequence[str]) -> List[np.ndarray]:
        """Embed a batch of texts in one forward pass, preserving input order"""
        if not texts:
            return []
        inputs = self.tokenizer(list(texts), padding=True, truncation=True,
                                max_length=self.max_length, return_tensors="pt").to(self.device)
        with torch.no_grad():
            outputs = self.model(**inputs)
        mask = inputs["attention_mask"].unsqueeze(-1).type_as(outputs.last_hidden_state)
        summed = (outputs.last_hidden_state * mask).sum(dim=1)
        pooled = summed / mask.sum(dim=1).clamp(min=1e-9)
        return [row for row in pooled.cpu().numpy().astype(np.float32)]

    async def embed(self, texts: Sequence[str]) -> List[np.ndarray]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.encode, list(texts))
