"""
Runtime Tools

Tools executed inside the sandboxed runtime through the CommandChannel. The
runtime only understands ``ExecuteCommand{command, args}``, so search and file
access are shipped as small Python one-liners. User supplied text (queries,
paths, file content) is base64 encoded into the script to avoid any quoting
issues.

``run_command`` and ``write_file`` mutate the workspace and require approval;
``search_text`` and ``read_file`` are read-only.
"""

import base64
import shlex
import sys
from typing import Any

from theia.core.domain.gateway import CommandChannel
from theia.core.interfaces.tools import ApprovalRiskLevel
from theia.infrastructure.tools.base import Tool

SEARCH_EXTENSIONS = (".py", ".ts", ".tsx", ".js", ".jsx", ".json", ".md", ".yaml", ".yml", ".toml")


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def format_search_script(query: str) -> str:
    """Recursive text search; prints ``path:line: text`` and exits 1 when nothing matches."""
    return (
        "import base64,os,sys\n"
        f"q=base64.b64decode('{_b64(query)}').decode()\n"
        f"exts={SEARCH_EXTENSIONS!r}\n"
        "found=False\n"
        "for root,dirs,files in os.walk('.'):\n"
        "    dirs[:]=[d for d in dirs if not d.startswith('.') and d not in ('node_modules','__pycache__')]\n"
        "    for f in files:\n"
        "        if not f.endswith(exts):\n"
        "            continue\n"
        "        p=os.path.join(root,f)\n"
        "        try:\n"
        "            lines=open(p,encoding='utf-8').read().splitlines()\n"
        "        except (OSError,UnicodeDecodeError):\n"
        "            continue\n"
        "        for i,l in enumerate(lines,1):\n"
        "            if q in l:\n"
        "                print(f'{p}:{i}: {l.strip()}')\n"
        "                found=True\n"
        "sys.exit(0 if found else 1)\n"
    )


def format_read_file_script(path: str) -> str:
    return (
        "import base64,sys\n"
        f"p=base64.b64decode('{_b64(path)}').decode()\n"
        "try:\n"
        "    sys.stdout.write(open(p,encoding='utf-8').read())\n"
        "except OSError as e:\n"
        "    sys.stderr.write(f'Cannot read {p}: {e}\\n')\n"
        "    sys.exit(1)\n"
    )


def format_write_file_script(path: str, content: str) -> str:
    return (
        "import base64,os\n"
        f"p=base64.b64decode('{_b64(path)}').decode()\n"
        f"c=base64.b64decode('{_b64(content)}').decode()\n"
        "d=os.path.dirname(p)\n"
        "if d:\n"
        "    os.makedirs(d,exist_ok=True)\n"
        "open(p,'w',encoding='utf-8').write(c)\n"
        "print('File written: '+p)\n"
    )


class _RuntimeTool(Tool):
    def __init__(self, channel: CommandChannel, interpreter: str | None = None):
        self.channel = channel
        self.interpreter = interpreter or sys.executable

    async def _run_script(self, script: str) -> str:
        return await self.channel.run(self.interpreter, ["-c", script])


class SearchTextTool(_RuntimeTool):
    @property
    def name(self) -> str:
        return "search_text"

    @property
    def description(self) -> str:
        return (
            "Search the workspace for a literal text. Returns 'path:line: text' "
            "matches; exit code 1 means nothing was found."
        )

    async def execute(self, query: str, **kwargs) -> str:
        return await self._run_script(format_search_script(query))


class ReadFileTool(_RuntimeTool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read a file from the workspace and return its content."

    async def execute(self, path: str, **kwargs) -> str:
        return await self._run_script(format_read_file_script(path))


class WriteFileTool(_RuntimeTool):
    """Creates or overwrites a file in the workspace (requires approval)."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file in the workspace, creating parent directories."

    @property
    def requires_approval(self) -> bool:
        return True

    @property
    def approval_risk_level(self) -> ApprovalRiskLevel:
        return ApprovalRiskLevel.MEDIUM

    def get_approval_preview(self, **kwargs: Any) -> str:
        path = kwargs.get("path", "<unknown>")
        content = str(kwargs.get("content", ""))
        return f"Tool: {self.name}\nWrite {len(content)} characters to {path}"

    async def execute(self, path: str, content: str, **kwargs) -> str:
        return await self._run_script(format_write_file_script(path, content))


class RunCommandTool(Tool):
    """Runs an arbitrary command in the sandbox (requires approval)."""

    def __init__(self, channel: CommandChannel):
        self.channel = channel

    @property
    def name(self) -> str:
        return "run_command"

    @property
    def description(self) -> str:
        return (
            "Run a command in the sandboxed runtime (e.g. 'pytest -q' or 'npm test'). "
            "Returns the combined output followed by [Exit Code: N]."
        )

    @property
    def requires_approval(self) -> bool:
        return True

    @property
    def approval_risk_level(self) -> ApprovalRiskLevel:
        return ApprovalRiskLevel.HIGH

    def get_approval_preview(self, **kwargs: Any) -> str:
        return f"Tool: {self.name}\nCommand: {kwargs.get('command', '')}"

    async def execute(self, command: str, **kwargs) -> str:
        parts = shlex.split(command)
        if not parts:
            raise ValueError("command must not be empty")
        return await self.channel.run(parts[0], parts[1:])
