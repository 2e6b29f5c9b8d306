import hashlib
import os
import shutil
import stat
import sys
import tempfile
import unittest
from types import SimpleNamespace
from unittest.mock import patch


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app import attachments


class TestLocalStorage(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp, True)
        env = patch.dict(
            os.environ,
            {"INTAKE_STORAGE_DIR": self.tmp, "INTAKE_PUBLIC_BASE_URL": "http://files.test/", "SUPABASE_SERVICE_ROLE_KEY": ""},
        )
        env.start()
        self.addCleanup(env.stop)

    def test_store_bytes_writes_under_folder(self) -> None:
        stored = attachments.store_bytes("photos", "scan.png", b"png-bytes", mime_type="image/png")
        digest = hashlib.sha256(b"png-bytes").hexdigest()
        self.assertEqual(stored["storage_key"], f"{digest}_scan.png")
        self.assertEqual(stored["size"], 9)
        self.assertEqual(stored["folder"], "photos")
        self.assertTrue(os.path.exists(os.path.join(self.tmp, "photos", stored["storage_key"])))

    def test_same_name_different_content_does_not_overwrite(self) -> None:
        a = attachments.store_bytes("documents", "report.pdf", b"one")
        b = attachments.store_bytes("documents", "report.pdf", b"two")
        self.assertNotEqual(a["storage_key"], b["storage_key"])
        self.assertEqual(attachments.read_bytes("documents", a["storage_key"]), b"one")
        self.assertEqual(attachments.read_bytes("documents", b["storage_key"]), b"two")

    def test_filename_cannot_escape_folder(self) -> None:
        stored = attachments.store_bytes("photos", "../../etc/passwd", b"x")
        self.assertNotIn("/", stored["storage_key"])
        path = attachments.resolve_path("photos", stored["storage_key"])
        self.assertTrue(str(path).startswith(self.tmp))

    def test_public_url_for_local_files(self) -> None:
        url = attachments.public_url("photos", "abc_a b.png")
        self.assertEqual(url, "http://files.test/files/photos/abc_a%20b.png")

    def test_share_public_makes_file_world_readable(self) -> None:
        stored = attachments.store_bytes("videos", "clip.mp4", b"v")
        path = attachments.resolve_path("videos", stored["storage_key"])
        os.chmod(path, 0o600)
        attachments.share_public("videos", stored["storage_key"])
        self.assertTrue(os.stat(path).st_mode & stat.S_IROTH)

    def test_share_public_missing_file_raises(self) -> None:
        with self.assertRaises(OSError):
            attachments.share_public("videos", "missing.mp4")

    def test_request_base_url_used_when_unconfigured(self) -> None:
        with patch.dict(os.environ, {"INTAKE_PUBLIC_BASE_URL": ""}):
            self.assertEqual(attachments.public_url("photos", "k.png"), "/files/photos/k.png")
            token = attachments.set_request_base_url("http://intake.test/")
            try:
                self.assertEqual(attachments.public_url("photos", "k.png"), "http://intake.test/files/photos/k.png")
            finally:
                attachments.reset_request_base_url(token)
            self.assertEqual(attachments.public_url("photos", "k.png"), "/files/photos/k.png")

    def test_configured_base_url_wins(self) -> None:
        token = attachments.set_request_base_url("http://intake.test")
        try:
            self.assertEqual(attachments.public_url("photos", "k.png"), "http://files.test/files/photos/k.png")
        finally:
            attachments.reset_request_base_url(token)

    def test_read_missing_file_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            attachments.read_bytes("photos", "missing.png")

    def test_folder_overrides(self) -> None:
        self.assertEqual(attachments.folder_for("photos"), "photos")
        self.assertEqual(attachments.folder_for("anything"), "documents")
        with patch.dict(os.environ, {"INTAKE_VIDEOS_FOLDER": "clips"}):
            self.assertEqual(attachments.folder_for("videos"), "clips")


class TestSupabaseStorage(unittest.TestCase):
    def setUp(self) -> None:
        env = patch.dict(
            os.environ,
            {
                "SUPABASE_URL": "https://sb.test/",
                "SUPABASE_SERVICE_ROLE_KEY": "service-key",
                "SUPABASE_STORAGE_BUCKET_ATTACHMENTS": "intake",
            },
        )
        env.start()
        self.addCleanup(env.stop)
        attachments._PUBLIC_BUCKETS.clear()
        self.addCleanup(attachments._PUBLIC_BUCKETS.clear)

    def test_upload_posts_to_bucket_folder(self) -> None:
        digest = hashlib.sha256(b"data").hexdigest()
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.post.return_value = SimpleNamespace(status_code=200, text="")
            stored = attachments.store_bytes("photos", "a.png", b"data", mime_type="image/png")
        url = client.post.call_args[0][0]
        headers = client.post.call_args[1]["headers"]
        self.assertEqual(url, f"https://sb.test/storage/v1/object/intake/photos/{digest}_a.png")
        self.assertEqual(headers["Content-Type"], "image/png")
        self.assertIsNone(stored["path"])
        self.assertEqual(
            attachments.public_url("photos", stored["storage_key"]),
            f"https://sb.test/storage/v1/object/public/intake/photos/{digest}_a.png",
        )

    def test_upload_error_raises(self) -> None:
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.post.return_value = SimpleNamespace(status_code=403, text="denied")
            with self.assertRaises(RuntimeError) as ctx:
                attachments.store_bytes("photos", "a.png", b"data")
        self.assertIn("supabase_upload_failed:403", str(ctx.exception))

    def test_share_marks_bucket_public(self) -> None:
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.put.return_value = SimpleNamespace(status_code=200, text="")
            attachments.share_public("photos", "k.png")
        self.assertEqual(client.put.call_args[0][0], "https://sb.test/storage/v1/bucket/intake")
        self.assertTrue(client.put.call_args[1]["json"]["public"])

    def test_bucket_made_public_once(self) -> None:
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.put.return_value = SimpleNamespace(status_code=200, text="")
            attachments.share_public("photos", "a.png")
            attachments.share_public("videos", "b.mp4")
        self.assertEqual(client.put.call_count, 1)

    def test_failed_share_is_attempted_again(self) -> None:
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.put.return_value = SimpleNamespace(status_code=500, text="boom")
            with self.assertRaises(RuntimeError):
                attachments.share_public("photos", "a.png")
            client.put.return_value = SimpleNamespace(status_code=200, text="")
            attachments.share_public("photos", "a.png")
        self.assertEqual(client.put.call_count, 2)

    def test_read_bytes_downloads_object(self) -> None:
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.get.return_value = SimpleNamespace(status_code=200, content=b"remote")
            data = attachments.read_bytes("photos", "k.png")
        self.assertEqual(data, b"remote")
        self.assertEqual(client.get.call_args[0][0], "https://sb.test/storage/v1/object/intake/photos/k.png")

    def test_read_bytes_missing_object(self) -> None:
        with patch("app.attachments.httpx.Client") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.get.return_value = SimpleNamespace(status_code=404, content=b"")
            with self.assertRaises(FileNotFoundError):
                attachments.read_bytes("photos", "k.png")

    def test_resolve_path_unavailable(self) -> None:
        with self.assertRaises(RuntimeError):
            attachments.resolve_path("photos", "k.png")


if __name__ == "__main__":
    unittest.main()
