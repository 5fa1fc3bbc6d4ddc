"""
Tests for the embedder module.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

import docpipe.clients.embedder as embedder
from docpipe.clients.embedder import SentenceTransformerEmbedder, embed_texts, load_model


@pytest.fixture(autouse=True)
def reset_model():
    embedder._model = None
    embedder._settings = None
    yield
    embedder._model = None
    embedder._settings = None


class TestLoadModel:
    @patch("docpipe.clients.embedder.SentenceTransformer")
    @patch("docpipe.clients.embedder.Settings")
    def test_load_model_uses_configured_name(self, mock_settings, mock_sentence_transformer):
        mock_settings.return_value = MagicMock(EMBEDDING_MODEL="test-model")

        result = load_model()

        mock_sentence_transformer.assert_called_once_with("test-model")
        assert result == mock_sentence_transformer.return_value

    @patch("docpipe.clients.embedder.SentenceTransformer")
    def test_load_model_caching(self, mock_sentence_transformer):
        assert load_model() is load_model()
        assert mock_sentence_transformer.call_count == 1


class TestEmbedTexts:
    def test_empty_input(self):
        assert embed_texts([]).size == 0

    @patch("docpipe.clients.embedder.load_model")
    def test_batches_are_stacked(self, mock_load_model):
        model = MagicMock()
        model.encode.side_effect = lambda texts, convert_to_numpy: np.ones((len(texts), 4), dtype=np.float32)
        mock_load_model.return_value = model

        result = embed_texts(["a", "b", "c"], batch_size=2)

        assert result.shape == (3, 4)
        assert model.encode.call_count == 2

    @patch("docpipe.clients.embedder.load_model")
    def test_single_vector_is_reshaped(self, mock_load_model):
        model = MagicMock()
        model.encode.return_value = np.ones(4, dtype=np.float32)
        mock_load_model.return_value = model

        assert embed_texts(["a"]).shape == (1, 4)

    @patch("docpipe.clients.embedder.load_model")
    def test_nan_embeddings_are_rejected(self, mock_load_model):
        model = MagicMock()
        model.encode.return_value = np.array([[np.nan, 1.0]])
        mock_load_model.return_value = model

        with pytest.raises(ValueError, match="NaN"):
            embed_texts(["a"])


class TestSentenceTransformerEmbedder:
    @patch("docpipe.clients.embedder.embed_texts")
    async def test_embed_returns_plain_lists(self, mock_embed_texts):
        mock_embed_texts.return_value = np.array([[0.1, 0.2], [0.3, 0.4]], dtype=np.float32)

        vectors = await SentenceTransformerEmbedder(batch_size=8).embed(["a", "b"])

        assert len(vectors) == 2
        assert isinstance(vectors[0], list)
        assert vectors[1] == pytest.approx([0.3, 0.4])
        mock_embed_texts.assert_called_once_with(["a", "b"], 8)
