import base64
from unittest.mock import MagicMock

import pytest

from meubolso.llm.extractor import TransactionExtractor, parse_extraction_output
from meubolso.llm.prompts import AUDIO_INSTRUCTION, EXTRACTION_PROMPT, IMAGE_INSTRUCTION


def _client_returning(content: str) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.return_value.choices = [
        MagicMock(message=MagicMock(content=content))
    ]
    return client


class TestParseExtractionOutput:
    def test_single_transaction(self):
        result = parse_extraction_output(
            '{"transactions": [{"description": "Uber", "amount": 50, "type": "expense", '
            '"category": "variable_transport"}], "confidence": 0.95}'
        )
        assert len(result.transactions) == 1
        tx = result.transactions[0]
        assert (tx.description, tx.amount, tx.type, tx.category) == (
            "Uber",
            50,
            "expense",
            "variable_transport",
        )
        assert result.confidence == 0.95

    def test_json_wrapped_in_prose_and_fences(self):
        raw = (
            "Claro! Aqui está:\n```json\n"
            '{"transactions": [{"description": "Salário", "amount": 5000, "type": "income", '
            '"category": null}], "confidence": 0.98}\n```'
        )
        result = parse_extraction_output(raw)
        assert result.transactions[0].type == "income"

    def test_invalid_entries_are_dropped_individually(self):
        raw = """{"transactions": [
            {"description": "Luz", "amount": 150, "type": "expense"},
            {"description": "Zero", "amount": 0, "type": "expense"},
            {"description": "Negativo", "amount": -10, "type": "expense"},
            {"description": "Texto", "amount": "80", "type": "expense"},
            {"description": "Bool", "amount": true, "type": "expense"},
            {"description": "Tipo", "amount": 10, "type": "transfer"},
            {"description": 42, "amount": 10, "type": "income"},
            {"amount": 10, "type": "income"},
            "not an object",
            {"description": "Internet", "amount": 80.5, "type": "expense"}
        ], "confidence": 0.7}"""
        result = parse_extraction_output(raw)
        assert [tx.description for tx in result.transactions] == ["Luz", "Internet"]
        assert result.confidence == 0.7

    def test_unknown_category_is_unset(self):
        result = parse_extraction_output(
            '{"transactions": [{"description": "Pix", "amount": 10, "type": "expense", '
            '"category": "misc"}], "confidence": 0.9}'
        )
        assert result.transactions[0].category is None

    @pytest.mark.parametrize("confidence", ["", "0", "null", '"high"'])
    def test_confidence_defaults(self, confidence):
        body = '{"transactions": [{"description": "Uber", "amount": 50, "type": "expense"}]'
        raw = body + (f', "confidence": {confidence}}}' if confidence else "}")
        assert parse_extraction_output(raw).confidence == 0.5

    @pytest.mark.parametrize(
        "raw",
        [
            "Não encontrei transações.",
            "{not json}",
            '{"transactions": "none"}',
            '{"confidence": 0.9}',
            "[1, 2, 3]",
            "",
        ],
    )
    def test_malformed_output_is_empty(self, raw):
        result = parse_extraction_output(raw)
        assert result.transactions == []
        assert result.confidence == 0

    def test_all_invalid_yields_empty_list(self):
        result = parse_extraction_output(
            '{"transactions": [{"description": "X", "amount": -1, "type": "expense"}], '
            '"confidence": 0.9}'
        )
        assert result.transactions == []
        assert result.confidence == 0


class TestTransactionExtractor:
    def test_text_request(self):
        client = _client_returning(
            '{"transactions": [{"description": "Uber", "amount": 50, "type": "expense"}], '
            '"confidence": 0.9}'
        )
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        result = extractor.extract("gastei 50 no uber")

        assert result.transactions[0].description == "Uber"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "m"
        system, user = kwargs["messages"]
        assert system == {"role": "system", "content": EXTRACTION_PROMPT}
        assert user["content"] == [
            {"type": "text", "text": "Entrada do usuário: gastei 50 no uber"}
        ]

    def test_voice_request_adds_audio_and_transcribe_instruction(self):
        client = _client_returning('{"transactions": []}')
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        extractor.extract(None, b"voice", "audio/ogg; codecs=opus")

        parts = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert parts[0] == {
            "type": "input_audio",
            "input_audio": {"data": base64.b64encode(b"voice").decode(), "format": "ogg"},
        }
        assert parts[1] == {"type": "text", "text": AUDIO_INSTRUCTION}

    def test_image_request_adds_data_url_and_read_instruction(self):
        client = _client_returning('{"transactions": []}')
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        extractor.extract(None, b"\xff\xd8jpeg", "image/jpeg")

        parts = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        encoded = base64.b64encode(b"\xff\xd8jpeg").decode()
        assert parts[0]["image_url"]["url"] == f"data:image/jpeg;base64,{encoded}"
        assert parts[1] == {"type": "text", "text": IMAGE_INSTRUCTION}

    def test_octet_stream_voice_note_is_sent_as_audio(self):
        client = _client_returning('{"transactions": []}')
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        extractor.extract(None, b"voice", "application/octet-stream", kind="ptt")

        client.chat.completions.create.assert_called_once()
        parts = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert parts[0]["type"] == "input_audio"
        assert parts[0]["input_audio"]["format"] == "ogg"
        assert parts[1] == {"type": "text", "text": AUDIO_INSTRUCTION}

    def test_octet_stream_image_is_sent_as_jpeg(self):
        client = _client_returning('{"transactions": []}')
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        extractor.extract(None, b"\xff\xd8jpeg", "application/octet-stream", kind="image")

        parts = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        encoded = base64.b64encode(b"\xff\xd8jpeg").decode()
        assert parts[0]["image_url"]["url"] == f"data:image/jpeg;base64,{encoded}"
        assert parts[1] == {"type": "text", "text": IMAGE_INSTRUCTION}

    def test_message_type_wins_over_mime(self):
        client = _client_returning('{"transactions": []}')
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        extractor.extract(None, b"voice", "video/mp4", kind="audio")

        parts = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert parts[0]["type"] == "input_audio"

    def test_request_failure_degrades_to_empty(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("timeout")
        extractor = TransactionExtractor(api_key="k", model="m", client=client)

        result = extractor.extract("gastei 50 no uber")

        assert result.transactions == []
        assert result.confidence == 0
        assert client.chat.completions.create.call_count == 1

    def test_nothing_to_send(self):
        client = MagicMock()
        extractor = TransactionExtractor(api_key="k", model="m", client=client)
        assert extractor.extract().transactions == []
        client.chat.completions.create.assert_not_called()
