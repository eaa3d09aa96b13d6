import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError

from userfeedback.credentials import (
    UploadCredentialIssuer,
    base_file_name,
    build_storage_paths,
)
from userfeedback.errors import CredentialServiceError, EmptyInputError, ValidationError

EXPIRATION = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)


def make_sts() -> MagicMock:
    sts = MagicMock()
    sts.assume_role.return_value = {
        "Credentials": {
            "AccessKeyId": "STS.key",
            "SecretAccessKey": "secret",
            "SessionToken": "token",
            "Expiration": EXPIRATION,
        }
    }
    return sts


class StoragePathTests(unittest.TestCase):
    def test_base_file_name_strips_directories(self):
        self.assertEqual(base_file_name("shot.png"), "shot.png")
        self.assertEqual(base_file_name("../../etc/passwd"), "passwd")
        self.assertEqual(base_file_name("C:\\Users\\me\\shot.png"), "shot.png")
        self.assertEqual(base_file_name("/abs/dir/trace.tar.gz"), "trace.tar.gz")

    def test_base_file_name_rejects_empty_names(self):
        for bad in ("", "..", "a/.."):
            with self.assertRaises(ValidationError):
                base_file_name(bad)

    def test_paths_share_batch_folder(self):
        targets = build_storage_paths(["a.png", "logs/b.txt"], "feedback/", 1723700000123)
        self.assertEqual(
            [t.storage_path for t in targets],
            ["feedback/1723700000123/a.png", "feedback/1723700000123/b.txt"],
        )
        self.assertEqual(targets[1].original_path, "logs/b.txt")

    def test_duplicate_names_get_discriminator(self):
        targets = build_storage_paths(
            ["a.png", "x/a.png", "a_1.png", "README"], "feedback", 42
        )
        self.assertEqual(
            [t.storage_path for t in targets],
            [
                "feedback/42/a.png",
                "feedback/42/a_1.png",
                "feedback/42/a_1_1.png",
                "feedback/42/README",
            ],
        )


class UploadCredentialIssuerTests(unittest.TestCase):
    def setUp(self):
        self.sts = make_sts()
        self.issuer = UploadCredentialIssuer(
            self.sts,
            bucket="feedback-bucket",
            role_arn="acs:ram::123456789:role/feedback-upload",
            endpoint="oss-cn-beijing.aliyuncs.com",
            region="cn-beijing",
            feedback_dir="feedback",
            role_session_name="uploader",
            clock=lambda: 1723700000.5,
        )

    def test_issues_scoped_credentials(self):
        credentials = self.issuer.generate_upload_credentials(["a.png", "a.png"])

        self.assertEqual(credentials.access_key_id, "STS.key")
        self.assertEqual(credentials.access_key_secret, "secret")
        self.assertEqual(credentials.security_token, "token")
        self.assertEqual(credentials.expiration, EXPIRATION)
        self.assertEqual(credentials.bucket, "feedback-bucket")
        self.assertEqual(credentials.region, "cn-beijing")
        self.assertEqual(
            [t.storage_path for t in credentials.files],
            ["feedback/1723700000500/a.png", "feedback/1723700000500/a_1.png"],
        )

        self.sts.assume_role.assert_called_once()
        kwargs = self.sts.assume_role.call_args.kwargs
        self.assertEqual(kwargs["RoleArn"], "acs:ram::123456789:role/feedback-upload")
        self.assertEqual(kwargs["RoleSessionName"], "uploader")
        self.assertEqual(kwargs["DurationSeconds"], 3600)
        statement = json.loads(kwargs["Policy"])["Statement"]
        self.assertEqual(len(statement), 1)
        self.assertEqual(statement[0]["Effect"], "Allow")
        self.assertEqual(statement[0]["Action"], ["s3:PutObject"])
        self.assertEqual(
            statement[0]["Resource"],
            [
                "arn:aws:s3:::feedback-bucket/feedback/1723700000500/a.png",
                "arn:aws:s3:::feedback-bucket/feedback/1723700000500/a_1.png",
            ],
        )

    def test_mapping(self):
        credentials = self.issuer.generate_upload_credentials(["dir/x.mp4"])
        self.assertEqual(
            credentials.mapping(), {"dir/x.mp4": "feedback/1723700000500/x.mp4"}
        )

    def test_empty_input_makes_no_call(self):
        with self.assertRaises(EmptyInputError):
            self.issuer.generate_upload_credentials([])
        self.sts.assume_role.assert_not_called()

    def test_invalid_name_makes_no_call(self):
        with self.assertRaises(ValidationError):
            self.issuer.generate_upload_credentials(["ok.png", ".."])
        self.sts.assume_role.assert_not_called()

    def test_sts_rejection(self):
        self.sts.assume_role.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "AssumeRole"
        )
        with self.assertRaises(CredentialServiceError):
            self.issuer.generate_upload_credentials(["a.png"])

    def test_sts_unreachable(self):
        self.sts.assume_role.side_effect = EndpointConnectionError(
            endpoint_url="https://sts.example.com"
        )
        with self.assertRaises(CredentialServiceError):
            self.issuer.generate_upload_credentials(["a.png"])


if __name__ == "__main__":
    unittest.main()
