from __future__ import annotations

import json

import pytest

from azure_devops_mcp.results import error_result, run_tool, serialize, text_result


class TestEnvelope:
    def test_strings_pass_through(self):
        assert serialize("raw text") == "raw text"

    def test_payload_is_json(self):
        result = text_result({"a": [1, 2]}, indent=2)

        assert result.isError is False
        assert len(result.content) == 1
        assert json.loads(result.content[0].text) == {"a": [1, 2]}
        assert result.content[0].text.startswith("{\n  ")

    def test_error_flag(self):
        result = error_result("boom")

        assert result.isError is True
        assert result.content[0].text == "boom"


class TestRunTool:
    @pytest.mark.asyncio
    async def test_success(self):
        async def operation():
            return [1, 2, 3]

        result = await run_tool("sample", operation, "Failed.")

        assert result.isError is False
        assert result.content[0].text == "[1, 2, 3]"

    @pytest.mark.asyncio
    async def test_failure_with_context(self):
        async def operation():
            raise ValueError("bad input")

        result = await run_tool("sample", operation, "Failed.", context="Error doing work")

        assert result.isError is True
        assert result.content[0].text == "Error doing work: bad input"
