"""
Content source backed by the bird CLI.

Runs `bird search "from:<handle>" --json` as a subprocess to fetch a
handle's recent posts. Handles authentication, error mapping and JSON
parsing.

bird has no page cursor for search, so page N is served by requesting the
newest N * page_size posts and slicing off the last page. Successive pages
can therefore overlap when new posts arrive between requests; the fetcher
deduplicates by post id.
"""

import os
import re
import shutil
import subprocess
from typing import Dict, List, Optional

from .base import ContentSource
from ..errors import (
    ConfigError, DigestError, ErrorCode, RateLimitedError, SourceError,
    TransientNetworkError,
)
from ..models import SearchPage, parse_source_posts


DEFAULT_BIRD_ENV_PATH = os.path.expanduser("~/.config/bird/env")
BIRD_TIMEOUT_SECONDS = 30


class BirdContentSource(ContentSource):
    """Search a handle's posts through the bird CLI."""

    def __init__(self, env_path: Optional[str] = None, timeout: int = BIRD_TIMEOUT_SECONDS):
        """
        Initialize bird source.

        Args:
            env_path: Path to bird env file with AUTH_TOKEN and CT0
            timeout: Subprocess timeout in seconds

        Raises:
            ConfigError: If the env file is missing or lacks credentials
        """
        self.env_path = env_path or os.environ.get("BIRD_ENV_PATH") or DEFAULT_BIRD_ENV_PATH
        self.timeout = timeout
        self.bird_env = load_bird_env(self.env_path)

    def search(self, author: str, page: int, page_size: int) -> SearchPage:
        """
        Fetch one page of an author's recent posts.

        Raises:
            SourceError: If bird fails or returns invalid data
        """
        if page < 1:
            raise ValueError("page must be >= 1")

        count = page * page_size
        cmd = self._build_search_command(author, count)
        stdout = self._run(cmd)

        posts = parse_source_posts(stdout)
        start = (page - 1) * page_size
        items = posts[start:start + page_size]

        return SearchPage(items=items, has_more=len(posts) >= count)

    def _build_search_command(self, author: str, count: int) -> List[str]:
        bird_path = find_bird_executable()
        if bird_path is None:
            raise ConfigError(
                ErrorCode.CONFIG_INVALID_VALUE,
                "bird CLI not found. Install with: bun install -g @steipete/bird"
            )

        cmd = build_base_command(bird_path, self.bird_env)
        cmd.extend([
            "search",
            f"from:{author.lstrip('@')}",
            "-n", str(count),
            "--json",
        ])
        return cmd

    def _subprocess_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.bird_env)
        return env

    def _run(self, cmd: List[str]) -> str:
        """
        Execute a bird command and return stdout.

        Raises:
            SourceError: If the command fails, times out, or prints nothing
        """
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._subprocess_env(),
            )
        except subprocess.TimeoutExpired:
            raise TransientNetworkError(
                ErrorCode.SOURCE_TIMEOUT,
                f"bird CLI timed out after {self.timeout}s"
            )
        except FileNotFoundError:
            raise SourceError(
                ErrorCode.SOURCE_COMMAND_FAILED,
                "bird CLI executable not found"
            )
        except OSError as e:
            raise SourceError(
                ErrorCode.SOURCE_COMMAND_FAILED,
                f"Failed to execute bird CLI: {str(e)}"
            )

        if result.returncode != 0:
            raise map_bird_error(result.stderr, result.returncode)

        stdout = result.stdout.strip()
        if not stdout:
            raise SourceError(
                ErrorCode.SOURCE_JSON_PARSE_ERROR,
                "bird CLI returned empty output"
            )

        return stdout


def load_bird_env(env_path: str) -> Dict[str, str]:
    """
    Load bird environment variables from env file.

    Parses 'export VAR=value' and 'export VAR="value"' lines.

    Raises:
        ConfigError: If the file is missing or lacks AUTH_TOKEN / CT0
    """
    env_path = os.path.expanduser(env_path)

    if not os.path.exists(env_path):
        raise ConfigError(
            ErrorCode.CONFIG_MISSING_CREDENTIALS,
            f"Bird env file not found: {env_path}"
        )

    env_vars = {}

    try:
        with open(env_path, 'r') as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue

                if line.startswith('export '):
                    line = line[7:]

                match = re.match(r'^(\w+)=(.*)$', line)
                if match:
                    key = match.group(1)
                    value = match.group(2).strip()
                    if (value.startswith('"') and value.endswith('"')) or \
                       (value.startswith("'") and value.endswith("'")):
                        value = value[1:-1]
                    env_vars[key] = value
    except PermissionError:
        raise ConfigError(
            ErrorCode.CONFIG_MISSING_CREDENTIALS,
            f"Permission denied reading: {env_path}"
        )

    auth_token = env_vars.get('AUTH_TOKEN') or env_vars.get('TWITTER_AUTH_TOKEN')
    ct0 = env_vars.get('CT0') or env_vars.get('TWITTER_CT0')

    if not auth_token or not ct0:
        raise ConfigError(
            ErrorCode.CONFIG_MISSING_CREDENTIALS,
            "Missing AUTH_TOKEN or CT0 in bird env file"
        )

    env_vars['AUTH_TOKEN'] = auth_token
    env_vars['CT0'] = ct0

    return env_vars


def find_bird_executable() -> Optional[str]:
    """Find the bird CLI executable in PATH or the bun global install."""
    bird_path = shutil.which('bird')
    if bird_path:
        return bird_path

    bun_bird = os.path.expanduser(
        "~/.bun/install/global/node_modules/@steipete/bird/dist/cli.js"
    )
    if os.path.exists(bun_bird):
        return bun_bird

    return None


def find_runtime() -> Optional[str]:
    """Find a JavaScript runtime (bun or node) for executing bird CLI."""
    for runtime in ['bun', 'node']:
        path = shutil.which(runtime)
        if path:
            return path
    return None


def build_base_command(bird_path: str, bird_env: Dict[str, str]) -> List[str]:
    """
    Build the base command for running bird CLI with auth flags.

    A .js entry point is run through bun/node.
    """
    cmd = []

    if bird_path.endswith('.js'):
        runtime = find_runtime()
        if runtime is None:
            raise SourceError(
                ErrorCode.SOURCE_COMMAND_FAILED,
                "No JavaScript runtime (bun/node) found to run bird CLI"
            )
        cmd.extend([runtime, bird_path])
    else:
        cmd.append(bird_path)

    if bird_env.get('AUTH_TOKEN'):
        cmd.extend(['--auth-token', bird_env['AUTH_TOKEN']])
    if bird_env.get('CT0'):
        cmd.extend(['--ct0', bird_env['CT0']])

    return cmd


def map_bird_error(stderr: str, return_code: int) -> DigestError:
    """
    Map bird CLI error output to the appropriate error.

    Rate limits and network failures become retryable error classes;
    expired cookies become ConfigError, which the fetcher does not degrade.
    """
    stderr_lower = stderr.lower() if stderr else ""

    # Rate limiting (check first - specific)
    if any(term in stderr_lower for term in ['rate limit', '429', 'too many requests']):
        return RateLimitedError(ErrorCode.SOURCE_RATE_LIMITED)

    # JSON errors before auth: "token" appears in JSON errors too
    if any(term in stderr_lower for term in ['json', 'parse error', 'syntaxerror', 'unexpected token']):
        return SourceError(ErrorCode.SOURCE_JSON_PARSE_ERROR)

    if any(term in stderr_lower for term in [
        'network', 'timeout', 'econnrefused', 'enotfound', 'econnreset', 'socket', 'dns'
    ]):
        return TransientNetworkError(ErrorCode.SOURCE_NETWORK_ERROR)

    if any(term in stderr_lower for term in [
        'unauthorized', 'auth', '401', 'forbidden', '403', 'cookie', 'login'
    ]):
        return ConfigError(ErrorCode.SOURCE_AUTH_FAILED)

    if any(term in stderr_lower for term in ['not found', 'suspended', 'does not exist']):
        return SourceError(ErrorCode.SOURCE_HANDLE_NOT_FOUND)

    return SourceError(
        ErrorCode.SOURCE_COMMAND_FAILED,
        f"bird CLI exited with code {return_code}"
    )
