"""
In-process stand-ins for the network backends.

- FakeS3Session replaces ``requests.Session`` and keeps objects in memory
- FakeFTPServer backs a patched ``ftplib.FTP`` / ``ftplib.FTP_TLS``
"""

import ftplib
import posixpath
from datetime import datetime, timezone
from types import SimpleNamespace
from urllib.parse import urlsplit

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


# ==================== S3 fake ====================


class FakeResponse:
    """The subset of ``requests.Response`` the S3 driver reads."""

    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")


class FakeS3Session:
    """In-memory S3 bucket keyed by request path."""

    def __init__(self):
        self.objects = {}
        self.requests = []
        self.fail_with = None  # HTTP status code or exception instance
        self.closed = False

    def request(self, method, url, headers=None, data=None, timeout=None):
        self.requests.append(
            SimpleNamespace(
                method=method,
                url=url,
                headers=dict(headers or {}),
                data=data,
                timeout=timeout,
            )
        )

        if isinstance(self.fail_with, Exception):
            raise self.fail_with
        if isinstance(self.fail_with, int):
            return FakeResponse(self.fail_with, b"<Error><Code>InternalError</Code></Error>")

        key = urlsplit(url).path
        if method == "PUT":
            self.objects[key] = data or b""
            return FakeResponse(200)
        if key not in self.objects:
            return FakeResponse(404, b"<Error><Code>NoSuchKey</Code></Error>")
        if method == "GET":
            return FakeResponse(200, self.objects[key])
        if method == "HEAD":
            return FakeResponse(200, headers={"Content-Length": str(len(self.objects[key]))})
        if method == "DELETE":
            del self.objects[key]
            return FakeResponse(204)
        return FakeResponse(405)

    def close(self):
        self.closed = True


# ==================== FTP fake ====================


class FakeFTPServer:
    """Shared state for every FakeFTP connection."""

    def __init__(self, username="ftpuser", password="ftppass"):
        self.username = username
        self.password = password
        self.files = {}
        self.dirs = {"/"}
        self.connections = []
        self.refuse_connections = False

    def connect(self, ssl=False):
        return FakeFTP(self, ssl=ssl)


class FakeFTP:
    """Minimal ``ftplib.FTP`` replacement operating on a FakeFTPServer."""

    def __init__(self, server, ssl=False):
        self.server = server
        self.ssl = ssl
        self.cwd_path = "/"
        self.passive = None
        self.protected = False
        self.closed = False
        server.connections.append(self)

    def _resolve(self, path):
        if not path.startswith("/"):
            path = posixpath.join(self.cwd_path, path)
        return posixpath.normpath(path)

    def connect(self, host, port, timeout=None):
        if self.server.refuse_connections:
            raise ConnectionRefusedError(f"Connection refused: {host}:{port}")
        self.host, self.port, self.timeout = host, port, timeout
        return "220 Welcome"

    def login(self, user, passwd):
        if (user, passwd) != (self.server.username, self.server.password):
            raise ftplib.error_perm("530 Login incorrect.")
        return "230 Login successful."

    def prot_p(self):
        self.protected = True

    def set_pasv(self, value):
        self.passive = value

    def pwd(self):
        return self.cwd_path

    def cwd(self, path):
        resolved = self._resolve(path)
        if resolved not in self.server.dirs:
            raise ftplib.error_perm("550 Failed to change directory.")
        self.cwd_path = resolved
        return "250 Directory successfully changed."

    def mkd(self, path):
        resolved = self._resolve(path)
        if resolved in self.server.dirs:
            raise ftplib.error_perm("550 Create directory operation failed.")
        self.server.dirs.add(resolved)
        return resolved

    def storbinary(self, cmd, fp):
        resolved = self._resolve(cmd.split(" ", 1)[1])
        if posixpath.dirname(resolved) not in self.server.dirs:
            raise ftplib.error_perm("553 Could not create file.")
        self.server.files[resolved] = fp.read()
        return "226 Transfer complete."

    def retrbinary(self, cmd, callback):
        resolved = self._resolve(cmd.split(" ", 1)[1])
        if resolved not in self.server.files:
            raise ftplib.error_perm("550 Failed to open file.")
        callback(self.server.files[resolved])
        return "226 Transfer complete."

    def delete(self, path):
        resolved = self._resolve(path)
        if resolved not in self.server.files:
            raise ftplib.error_perm("550 Delete operation failed.")
        del self.server.files[resolved]
        return "250 Delete operation successful."

    def voidcmd(self, cmd):
        return "200 OK"

    def size(self, path):
        resolved = self._resolve(path)
        if resolved not in self.server.files:
            raise ftplib.error_perm("550 Could not get file size.")
        return len(self.server.files[resolved])

    def quit(self):
        self.closed = True
        return "221 Goodbye."

    def close(self):
        self.closed = True


