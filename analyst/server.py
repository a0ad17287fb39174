"""
Market Analyst MCP Server.

Transport: stdio.

Expected MCP Tool Return Format:
{
    "ok": bool,
    ...                      # Tool-specific fields if ok is True
    "error": str            # Present if ok is False
}
"""

import argparse
import logging
import os
import signal
import sys
from typing import Annotated, Any, Dict, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .common.config import ensure_directories, load_config
from .common.errors import AnalystError
from .service import AnalystService

logger = logging.getLogger("analyst.server")


def _error(e: Exception) -> Dict[str, Any]:
    return {"ok": False, "error": str(e)}


class AnalystMCPServer:
    """
    Registers the analyst operations as MCP tools over an AnalystService.

    Pipeline errors (AnalystError) and bad arguments (ValueError) come back
    as ``{"ok": False, "error": ...}`` instead of failing the tool call.
    """

    def __init__(self, service: AnalystService, mcp_server_name: str = "market_analyst") -> None:
        self.service = service
        self.mcp = FastMCP(name=mcp_server_name)

        # ---------- Ingestion ---------- #
        @self.mcp.tool(
            name="ingest_text",
            description="Chunk, embed and store a text document under a document name.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_ingest_text(
            document_name: Annotated[str, Field(description="name to store the document under")],
            content: Annotated[str, Field(description="full document text")],
            metadata: Annotated[Optional[Dict[str, Any]], Field(description="extra metadata stored on every chunk")] = None,
        ) -> Dict[str, Any]:
            try:
                result = self.service.ingest_text(document_name, content, metadata)
            except (AnalystError, ValueError) as e:
                return _error(e)
            return {"ok": True, **result.to_dict()}

        @self.mcp.tool(
            name="ingest_pdf",
            description="Extract text from a PDF (local path or http(s) URL) in page windows and ingest it.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_ingest_pdf(
            source: Annotated[str, Field(description="filesystem path or http(s) URL of the PDF")],
            document_name: Annotated[Optional[str], Field(description="name to store the document under (default: file name)")] = None,
        ) -> Dict[str, Any]:
            try:
                result = await self.service.ingest_pdf(source, document_name)
            except (AnalystError, ValueError) as e:
                return _error(e)
            return {"ok": True, **result.to_dict()}

        # ---------- Questions and analysis ---------- #
        @self.mcp.tool(
            name="ask",
            description="Answer a question from one ingested document, citing numbered sources.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_ask(
            question: Annotated[str, Field(description="question to answer")],
            document_name: Annotated[str, Field(description="document to answer from")],
        ) -> Dict[str, Any]:
            try:
                answer = self.service.ask(question, document_name)
            except (AnalystError, ValueError) as e:
                return _error(e)
            return {"ok": True, **answer.to_dict()}

        @self.mcp.tool(
            name="findings",
            description="Key insights, opportunities, threats and recommendations for a document.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_findings(
            document_name: Annotated[str, Field(description="document to analyze")],
        ) -> Dict[str, Any]:
            try:
                return {"ok": True, "findings": self.service.findings(document_name)}
            except (AnalystError, ValueError) as e:
                return _error(e)

        @self.mcp.tool(
            name="extract_structured",
            description="Company name, industry, market size, competitors and metrics from a document.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_extract_structured(
            document_name: Annotated[str, Field(description="document to extract from")],
        ) -> Dict[str, Any]:
            try:
                return {"ok": True, "data": self.service.extract_structured(document_name)}
            except (AnalystError, ValueError) as e:
                return _error(e)

        @self.mcp.tool(
            name="analyze_document",
            description="Full market analysis with a SWOT block from raw document text.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_analyze_document(
            content: Annotated[str, Field(description="document text (truncated to 100,000 characters)")],
        ) -> Dict[str, Any]:
            try:
                return {"ok": True, "analysis": self.service.analyze_document(content)}
            except (AnalystError, ValueError) as e:
                return _error(e)

        @self.mcp.tool(
            name="chat_history",
            description="Conversation turns for one document, oldest first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_chat_history(
            document_name: Annotated[str, Field(description="document whose history to read")],
        ) -> Dict[str, Any]:
            return {"ok": True, "messages": self.service.chat_history(document_name)}

        # ---------- Reports ---------- #
        @self.mcp.tool(
            name="create_report",
            description="Extract summary, products, figures, insights and trends from text and archive the report.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_create_report(
            document_name: Annotated[str, Field(description="name of the source document")],
            content: Annotated[str, Field(description="document text")],
        ) -> Dict[str, Any]:
            try:
                return {"ok": True, "report": self.service.create_report(document_name, content)}
            except (AnalystError, ValueError) as e:
                return _error(e)

        @self.mcp.tool(
            name="list_reports",
            description="Archived reports, most recent first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_list_reports(
            limit: Annotated[int, Field(description="maximum number of reports", ge=1)] = 10,
        ) -> Dict[str, Any]:
            try:
                return {"ok": True, "reports": self.service.list_reports(limit)}
            except AnalystError as e:
                return _error(e)

        @self.mcp.tool(
            name="get_report",
            description="One archived report by id.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_get_report(
            report_id: Annotated[str, Field(description="report id returned by create_report or list_reports")],
        ) -> Dict[str, Any]:
            try:
                return {"ok": True, "report": self.service.get_report(report_id)}
            except AnalystError as e:
                return _error(e)

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main(argv=None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Run the market analyst MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "market_analyst"),
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("ANALYST_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ...).",
    )
    args = parser.parse_args(argv)

    # stdout carries the MCP protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ensure_directories()
    config = load_config()
    app = AnalystMCPServer(AnalystService.from_config(config), mcp_server_name=args.server_name)

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
