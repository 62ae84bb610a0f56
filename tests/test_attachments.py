"""
Attachment store tests.

Tests cover:
  - Requester uploads, file written under UPLOAD_FOLDER
  - Filename sanitised and prefixed
  - Empty file / missing file / non-requester rejected
"""
import io
import os

import pytest
from werkzeug.datastructures import FileStorage

from approvals.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from approvals.services import attachment_service
from approvals.services.request_lifecycle import RequestLifecycle


@pytest.fixture()
def req_and_requester(make_user, sent_notifications):
    requester = make_user("employee")
    req = RequestLifecycle(notifier=sent_notifications).create(
        {"type": "maintenance", "title": "Leaking tap", "description": "Kitchen"},
        requester,
    )
    return req, requester


def _file(content=b"hello", name="photo.png", mimetype="image/png"):
    return FileStorage(stream=io.BytesIO(content), filename=name, content_type=mimetype)


class TestStore:
    def test_store(self, app, req_and_requester):
        req, requester = req_and_requester
        att = attachment_service.store(req.id, _file(b"abc"), requester)

        assert att.id is not None
        assert att.original_filename == "photo.png"
        assert att.filename.endswith("_photo.png")
        assert att.size == 3
        assert att.mime_type == "image/png"
        assert os.path.isfile(att.path)
        assert att.path.startswith(app.config["UPLOAD_FOLDER"])
        assert [a.id for a in attachment_service.list_for(req.id)] == [att.id]

    def test_unsafe_filename_sanitised(self, req_and_requester):
        req, requester = req_and_requester
        att = attachment_service.store(req.id, _file(name="../../etc/passwd"), requester)
        assert "/" not in att.filename
        assert ".." not in att.filename
        assert att.original_filename == "../../etc/passwd"

    def test_empty_file_rejected(self, req_and_requester):
        req, requester = req_and_requester
        with pytest.raises(ValidationError):
            attachment_service.store(req.id, _file(b""), requester)

    def test_missing_filename_rejected(self, req_and_requester):
        req, requester = req_and_requester
        with pytest.raises(ValidationError):
            attachment_service.store(req.id, _file(name=""), requester)

    def test_only_requester(self, req_and_requester, make_user):
        req, _ = req_and_requester
        with pytest.raises(ForbiddenError):
            attachment_service.store(req.id, _file(), make_user("general_services"))

    def test_missing_request(self, make_user):
        with pytest.raises(NotFoundError):
            attachment_service.store(999, _file(), make_user("employee"))
