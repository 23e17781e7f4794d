from __future__ import annotations

import pytest

from registration_intake.exceptions import UploadPolicyError
from registration_intake.uploads import naming
from registration_intake.uploads.policy import (
    IDENTITY_FIELD,
    MiB,
    SIGNATURE_FIELD,
    UploadLimits,
    admit,
    check_complete,
    check_sizes,
    policy_for_type,
    too_large_message,
)


class TestAdmit:
    def test_identity_accepts_pdf_and_images(self):
        assert admit(IDENTITY_FIELD, "application/pdf", "scan.pdf").folder == "identity"
        assert admit(IDENTITY_FIELD, "image/jpeg", "scan.JPG").file_type == "identity"

    def test_signature_rejects_pdf(self):
        with pytest.raises(UploadPolicyError) as ei:
            admit(SIGNATURE_FIELD, "application/pdf", "sign.pdf")
        assert ei.value.code == "INVALID_FILE_TYPE"
        assert ei.value.extra["field"] == SIGNATURE_FIELD

    def test_unknown_slot(self):
        with pytest.raises(UploadPolicyError) as ei:
            admit("passportFile", "image/png", "p.png")
        assert ei.value.code == "UNEXPECTED_FIELD"
        assert ei.value.message == "Unknown file field: passportFile"

    def test_extension_must_match_slot(self):
        with pytest.raises(UploadPolicyError) as ei:
            admit(SIGNATURE_FIELD, "image/png", "sign.gif")
        assert ei.value.code == "INVALID_FILE_EXTENSION"

    def test_mime_parameters_are_ignored(self):
        assert admit(SIGNATURE_FIELD, "image/png; charset=binary", "sign.png").field == SIGNATURE_FIELD

    def test_filename_length(self):
        with pytest.raises(UploadPolicyError) as ei:
            admit(SIGNATURE_FIELD, "image/png", "a" * 252 + ".png")
        assert ei.value.code == "FILENAME_TOO_LONG"

    @pytest.mark.parametrize("name", ["../etc/passwd.png", "sign;rm.png", "naïve.png"])
    def test_unsafe_filenames(self, name):
        with pytest.raises(UploadPolicyError) as ei:
            admit(SIGNATURE_FIELD, "image/png", name)
        assert ei.value.code == "INVALID_FILENAME"

    def test_common_symbols_allowed(self):
        admit(IDENTITY_FIELD, "application/pdf", "ID card (front) [v2]_final-1.pdf")


def test_size_ceilings_per_slot():
    check_sizes({IDENTITY_FIELD: 5 * MiB, SIGNATURE_FIELD: 2 * MiB})
    with pytest.raises(UploadPolicyError) as ei:
        check_sizes({IDENTITY_FIELD: 1024, SIGNATURE_FIELD: 2 * MiB + 1})
    assert ei.value.code == "FILE_TOO_LARGE"
    assert ei.value.extra["errors"] == ["Signature file size cannot exceed 2MB"]


def test_transport_ceiling_is_largest_slot():
    assert UploadLimits().max_file_bytes == 5 * MiB
    assert UploadLimits().max_files == 2
    assert too_large_message() == "File too large. Identity files max 5MB, signature files max 2MB."


def test_missing_slots_are_listed_in_order():
    with pytest.raises(UploadPolicyError) as ei:
        check_complete(set())
    assert ei.value.code == "MISSING_FILES"
    assert ei.value.extra["missingFiles"] == [IDENTITY_FIELD, SIGNATURE_FIELD]
    check_complete({IDENTITY_FIELD, SIGNATURE_FIELD})


def test_policy_for_type():
    assert policy_for_type("signature").field == SIGNATURE_FIELD
    with pytest.raises(KeyError):
        policy_for_type("passport")


class TestNaming:
    def test_stored_name_shape(self):
        name = naming.stored_name("My Aadhaar Card (front side).PDF", now_ms=1700000000000, random_id="abcd1234")
        assert name == "1700000000000_abcd1234_My_Aadhaar_Card__fro.pdf"

    def test_stored_names_are_unique(self):
        assert naming.stored_name("a.png") != naming.stored_name("a.png")

    def test_folders(self, tmp_path):
        assert naming.folder_for(IDENTITY_FIELD) == "identity"
        assert naming.folder_for(SIGNATURE_FIELD) == "signatures"
        assert naming.folder_for("other") == naming.DEFAULT_FOLDER
        dest = naming.destination(tmp_path, SIGNATURE_FIELD, "s.png")
        assert dest.parent == tmp_path / "signatures"
        assert dest.parent.is_dir()
