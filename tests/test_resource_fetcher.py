import os
import tempfile
import threading
import time
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from swolegen.cancellation import CallContext
from swolegen.errors import CancelledError, FetchError
from swolegen.resource_fetcher import fetch_text, indent_for_block


class _BigBodyHandler(BaseHTTPRequestHandler):
    body_size = 200000
    release = threading.Event()

    def do_GET(self):
        if self.path == "/missing":
            self.send_response(404)
            self.end_headers()
            return
        if self.path == "/slow":
            self.release.wait(3)
        body = "é".encode("utf-8") * 5000 if self.path == "/accents" else b"x" * self.body_size
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        try:
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass


class LocalFetchTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "instructions.md")
        with open(self.path, "w") as f:
            f.write("Squat heavy on Mondays.\nNo overhead work.")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_empty_reference_is_no_document(self):
        self.assertEqual(fetch_text(""), "")
        self.assertEqual(fetch_text("   "), "")

    def test_reads_local_path(self):
        self.assertEqual(fetch_text(self.path), "Squat heavy on Mondays.\nNo overhead work.")

    def test_reads_file_url(self):
        self.assertEqual(fetch_text("file://" + self.path), "Squat heavy on Mondays.\nNo overhead work.")

    def test_truncates_at_byte_cap(self):
        self.assertEqual(fetch_text(self.path, max_bytes=5), "Squat")

    def test_missing_file_raises_fetch_error(self):
        with self.assertRaises(FetchError):
            fetch_text(os.path.join(self.tmpdir.name, "nope.md"))

    def test_cancelled_context_stops_before_reading(self):
        context = CallContext()
        context.cancel()
        with self.assertRaises(CancelledError):
            fetch_text(self.path, context=context)


class HttpFetchTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.server = ThreadingHTTPServer(("127.0.0.1", 0), _BigBodyHandler)
        cls.thread = threading.Thread(target=cls.server.serve_forever, daemon=True)
        cls.thread.start()
        cls.base_url = f"http://127.0.0.1:{cls.server.server_address[1]}"

    @classmethod
    def tearDownClass(cls):
        _BigBodyHandler.release.set()
        cls.server.shutdown()
        cls.server.server_close()

    def test_http_body_is_capped(self):
        text = fetch_text(self.base_url + "/big", max_bytes=1024)
        self.assertEqual(len(text.encode("utf-8")), 1024)

    def test_split_multibyte_character_stays_under_cap(self):
        text = fetch_text(self.base_url + "/accents", max_bytes=1025)
        self.assertLessEqual(len(text.encode("utf-8")), 1025)
        self.assertEqual(text, "é" * 512)

    def test_cancel_interrupts_slow_response(self):
        context = CallContext()
        timer = threading.Timer(0.2, context.cancel)
        timer.start()
        self.addCleanup(timer.cancel)

        started = time.monotonic()
        with self.assertRaises(CancelledError):
            fetch_text(self.base_url + "/slow", context=context)
        self.assertLess(time.monotonic() - started, 1.0)

    def test_deadline_interrupts_slow_response(self):
        with self.assertRaises(CancelledError):
            fetch_text(self.base_url + "/slow", context=CallContext(timeout=0.2))

    def test_http_error_status_raises(self):
        with self.assertRaises(FetchError) as ctx:
            fetch_text(self.base_url + "/missing")
        self.assertIn("404", str(ctx.exception))


class IndentForBlockTests(unittest.TestCase):
    def test_indents_every_line(self):
        self.assertEqual(indent_for_block("a\nb"), "  a\n  b")

    def test_empty_text(self):
        self.assertEqual(indent_for_block(""), "")


if __name__ == "__main__":
    unittest.main()
