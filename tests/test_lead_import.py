"""Tests for CSV lead / prospect import.

Covers:
- Header normalisation and synonym mapping
- Empty files and files without a name column
- Row creation: dealership, primary contact, optional deal, import note
- Duplicate detection (case-insensitive, within the caller's visibility)
- Rows without a name are skipped, not failed
- Per-row failure isolation
- Territory assignment
- Prospect import and its required columns
- Upload endpoints: missing file, empty file, success payload
"""

import io

import pytest

from supreme_crm.models.activity import Activity
from supreme_crm.models.audit import AuditEvent
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.prospect import Prospect
from supreme_crm.services import lead_import
from supreme_crm.services.lead_import import normalize_header, parse_csv


class TestParseCsv:

    @pytest.mark.parametrize("raw, expected", [
        ("Dealership Name", "dealershipname"),
        ("dealership_name", "dealershipname"),
        ("  E-Mail ", "email"),
        ("Zip Code", "zipcode"),
        (None, ""),
    ])
    def test_normalize_header(self, raw, expected):
        assert normalize_header(raw) == expected

    def test_synonyms_map_to_canonical_fields(self):
        rows = parse_csv("Company,First Name,Job Title\nAcme Motors,Jo,GM\n")
        assert rows == [{
            "dealership_name": "Acme Motors",
            "contact_first_name": "Jo",
            "contact_title": "GM",
        }]

    def test_unknown_columns_are_ignored(self):
        rows = parse_csv("name,favourite colour\nAcme,blue\n")
        assert rows == [{"dealership_name": "Acme"}]

    def test_short_rows_get_empty_fields(self):
        rows = parse_csv("name,city,state\nAcme\n")
        assert rows == [{"dealership_name": "Acme", "city": "", "state": ""}]

    def test_quoted_commas(self):
        rows = parse_csv('name,brands\n"Acme, Inc.","Ford, Toyota"\n')
        assert rows[0]["dealership_name"] == "Acme, Inc."
        assert rows[0]["brands"] == "Ford, Toyota"

    def test_byte_order_mark_is_stripped(self):
        rows = parse_csv("\ufeffname\nAcme\n")
        assert rows == [{"dealership_name": "Acme"}]

    def test_blank_lines_are_dropped(self):
        rows = parse_csv("name\n\nAcme\n,\nBeta\n")
        assert [r["dealership_name"] for r in rows] == ["Acme", "Beta"]

    def test_last_non_empty_duplicate_column_wins(self):
        rows = parse_csv("company,dealership\nFirst,Second\nThird,\n")
        assert rows[0]["dealership_name"] == "Second"
        assert rows[1]["dealership_name"] == "Third"

    @pytest.mark.parametrize("text", ["", "name\n", "\n\n"])
    def test_header_only_or_empty_rejected(self, text):
        with pytest.raises(ValueError, match="header row"):
            parse_csv(text)


class TestImportLeads:

    def test_creates_dealership_contact_deal_and_note(self, seed_data):
        csv_text = (
            "Dealership Name,First Name,Last Name,Email,Phone,Contact Phone,"
            "Title,City,State,Zip,Website,Brands,Employees,Notes,Deal Value\n"
            "Metro Honda,Dana,Diaz,DANA@metro.example,555-1000,555-2000,"
            "General Manager,Austin,TX,78701,https://metro.example,"
            '"Honda; Acura",45,Warm intro,"$12,500"\n'
        )
        result = lead_import.import_leads(csv_text, seed_data["alice"])

        assert result["created"] == 1
        assert result["skipped"] == 0
        assert result["failed"] == 0

        dealership = Dealership.query.filter_by(name="Metro Honda").one()
        assert dealership.status == "PROSPECT"
        assert dealership.source == "csv_import"
        assert dealership.assigned_user_id == seed_data["alice_id"]
        assert dealership.territory_id is None
        assert dealership.brands == ["Honda", "Acura"]
        assert dealership.employee_count == 45
        assert dealership.phone == "555-1000"
        assert dealership.zip_code == "78701"

        contact = Contact.query.filter_by(dealership_id=dealership.id).one()
        assert contact.first_name == "Dana"
        assert contact.email == "dana@metro.example"
        assert contact.phone == "555-2000"
        assert contact.position == "General Manager"
        assert contact.is_primary is True

        deal = Deal.query.filter_by(dealership_id=dealership.id).one()
        assert deal.title == "Metro Honda - Imported Lead"
        assert deal.value == 12500.0
        assert deal.stage == "LEAD"
        assert deal.probability == 10
        assert deal.contact_id == contact.id

        note = Activity.query.filter_by(dealership_id=dealership.id).one()
        assert note.activity_type == "NOTE"
        assert note.subject == "Lead imported from CSV"

    def test_no_contact_or_deal_when_columns_empty(self, seed_data):
        lead_import.import_leads("name,city\nQuiet Motors,Waco\n", seed_data["alice"])
        dealership = Dealership.query.filter_by(name="Quiet Motors").one()
        assert dealership.contacts.count() == 0
        assert dealership.deals.count() == 0

    def test_email_only_contact_gets_placeholder_name(self, seed_data):
        lead_import.import_leads(
            "name,email\nInbox Motors,sales@inbox.example\n", seed_data["alice"]
        )
        contact = Contact.query.filter_by(email="sales@inbox.example").one()
        assert contact.first_name == "Unknown"
        assert contact.last_name == ""

    @pytest.mark.parametrize("raw", ["0", "-10", "abc", "nan"])
    def test_non_positive_or_bad_deal_value_creates_no_deal(self, seed_data, raw):
        lead_import.import_leads(f"name,deal value\nZero Motors,{raw}\n", seed_data["alice"])
        dealership = Dealership.query.filter_by(name="Zero Motors").one()
        assert dealership.deals.count() == 0

    def test_bad_employee_count_is_dropped(self, seed_data):
        lead_import.import_leads("name,employees\nFuzzy Motors,many\n", seed_data["alice"])
        assert Dealership.query.filter_by(name="Fuzzy Motors").one().employee_count is None

    def test_duplicates_are_case_insensitive(self, seed_data):
        result = lead_import.import_leads(
            "name\nnorthside motors\nNew Place\n", seed_data["alice"]
        )
        assert result["created"] == 1
        assert result["duplicates"] == 1
        assert result["skipped"] == 1

    def test_duplicate_within_same_file(self, seed_data):
        result = lead_import.import_leads("name\nTwin Auto\nTWIN AUTO\n", seed_data["alice"])
        assert result["created"] == 1
        assert result["duplicates"] == 1

    def test_duplicate_check_is_scoped_to_visibility(self, seed_data):
        # Southside Auto belongs to bob's territory; alice can't see it.
        result = lead_import.import_leads("name\nSouthside Auto\n", seed_data["alice"])
        assert result["created"] == 1
        assert Dealership.query.filter_by(name="Southside Auto").count() == 2

    def test_rows_without_name_are_skipped(self, seed_data):
        result = lead_import.import_leads("name,city\nGood Motors,Waco\n,Tyler\n", seed_data["alice"])
        assert result["created"] == 1
        assert result["missing_name"] == 1
        assert result["skipped"] == 1
        assert result["failed"] == 0

    def test_no_name_column_rejected(self, seed_data):
        with pytest.raises(ValueError, match="No valid leads"):
            lead_import.import_leads("city,state\nWaco,TX\n", seed_data["alice"])

    def test_assign_to_territory(self, seed_data):
        lead_import.import_leads(
            "name\nTerritory Motors\n", seed_data["alice"], assign_to_territory=True
        )
        dealership = Dealership.query.filter_by(name="Territory Motors").one()
        assert dealership.territory_id == seed_data["north"].id

    def test_html_is_stripped(self, seed_data):
        lead_import.import_leads("name\n<b>Bold Motors</b>\n", seed_data["alice"])
        assert Dealership.query.filter_by(name="Bold Motors").count() == 1

    def test_failed_row_does_not_block_others(self, seed_data, monkeypatch):
        real = lead_import._create_lead

        def flaky(user, row, name, territory_id):
            if name == "Broken Motors":
                raise RuntimeError("disk full")
            return real(user, row, name, territory_id)

        monkeypatch.setattr(lead_import, "_create_lead", flaky)
        result = lead_import.import_leads(
            "name\nFirst Motors\nBroken Motors\nLast Motors\n", seed_data["alice"]
        )

        assert result["created"] == 2
        assert result["failed"] == 1
        assert result["errors"] == ["Row 2: failed to create Broken Motors: disk full"]
        names = {d.name for d in Dealership.query.all()}
        assert {"First Motors", "Last Motors"} <= names
        assert "Broken Motors" not in names

    def test_error_list_is_capped(self, seed_data, monkeypatch, app):
        def always_fail(user, row, name, territory_id):
            raise RuntimeError("nope")

        monkeypatch.setattr(lead_import, "_create_lead", always_fail)
        monkeypatch.setitem(app.config, "IMPORT_ERROR_PREVIEW", 2)
        csv_text = "name\n" + "\n".join(f"Dealer {i}" for i in range(5)) + "\n"
        result = lead_import.import_leads(csv_text, seed_data["alice"])

        assert result["failed"] == 5
        assert len(result["errors"]) == 2

    def test_import_is_audited(self, seed_data):
        lead_import.import_leads("name\nAudit Motors\n", seed_data["alice"])
        event = AuditEvent.query.filter_by(action="leads.imported").one()
        assert event.actor_user_id == seed_data["alice_id"]
        assert event.metadata_["created"] == 1


class TestImportProspects:

    def test_imports_with_default_industry(self, seed_data):
        result = lead_import.import_prospects(
            "First Name,Last Name,Email,Title,Company\n"
            "Lee,Park,LEE@park.example,Sales Manager,Park Autos\n",
            seed_data["alice"],
        )
        assert result["imported"] == 1
        prospect = Prospect.query.filter_by(last_name="Park").one()
        assert prospect.email == "lee@park.example"
        assert prospect.industry == "Automotive"
        assert prospect.position == "Sales Manager"
        assert prospect.source == "csv_import"
        assert prospect.user_id == seed_data["alice_id"]

    def test_requires_name_columns(self, seed_data):
        with pytest.raises(ValueError, match="first_name and last_name"):
            lead_import.import_prospects("first_name,email\nLee,lee@x.example\n", seed_data["alice"])

    def test_duplicate_email_skipped(self, seed_data):
        result = lead_import.import_prospects(
            "first_name,last_name,email\nPat,Again,PAT@dealer.example\n",
            seed_data["alice"],
        )
        assert result["imported"] == 0
        assert result["duplicates"] == 1

    def test_rows_missing_a_name_are_skipped(self, seed_data):
        result = lead_import.import_prospects(
            "first_name,last_name\nLee,\nKim,Cho\n", seed_data["alice"]
        )
        assert result["imported"] == 1
        assert result["missing_name"] == 1

    def test_invalid_row_is_reported(self, seed_data):
        result = lead_import.import_prospects(
            "first_name,last_name,employees\nLee,Park,-4\nKim,Cho,12\n",
            seed_data["alice"],
        )
        assert result["imported"] == 1
        assert result["failed"] == 1
        assert "negative" in result["errors"][0]


class TestUploadRoutes:

    def _upload(self, client, url, content, filename="leads.csv", **form):
        data = {"file": (io.BytesIO(content), filename)}
        data.update(form)
        return client.post(url, data=data, content_type="multipart/form-data")

    def test_lead_upload(self, client, login, seed_data):
        login("alice")
        resp = self._upload(client, "/api/leads/upload", b"name\nUpload Motors\nNorthside Motors\n")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["message"] == "Imported 1 leads. 1 duplicates skipped."
        assert data["results"]["created"] == 1

    def test_lead_upload_with_territory(self, client, login, seed_data, app):
        login("bob")
        resp = self._upload(
            client, "/api/leads/upload", b"name\nBayou Motors\n",
            assign_to_territory="true",
        )
        assert resp.status_code == 200
        with app.app_context():
            dealership = Dealership.query.filter_by(name="Bayou Motors").one()
            assert dealership.territory_id == seed_data["south"].id

    def test_latin1_upload(self, client, login, app):
        login("alice")
        resp = self._upload(client, "/api/leads/upload", "name\nCaf\xe9 Motors\n".encode("latin-1"))
        assert resp.status_code == 200
        with app.app_context():
            assert Dealership.query.filter_by(name="Caf\xe9 Motors").count() == 1

    def test_missing_file(self, client, login):
        login("alice")
        resp = client.post("/api/leads/upload", data={}, content_type="multipart/form-data")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No file provided"

    def test_empty_file(self, client, login):
        login("alice")
        resp = self._upload(client, "/api/leads/upload", b"   \n")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "The uploaded file is empty"

    def test_header_only_file(self, client, login):
        login("alice")
        resp = self._upload(client, "/api/leads/upload", b"name,city\n")
        assert resp.status_code == 400

    def test_upload_requires_login(self, client, seed_data):
        resp = self._upload(client, "/api/leads/upload", b"name\nX\n")
        assert resp.status_code == 401

    def test_prospect_upload(self, client, login, app):
        login("bob")
        resp = self._upload(
            client, "/api/prospects/import", b"first_name,last_name\nRae,Lim\n"
        )
        assert resp.status_code == 200
        assert resp.get_json()["results"]["imported"] == 1
        with app.app_context():
            assert Prospect.query.filter_by(last_name="Lim").count() == 1

    def test_upload_too_large(self, client, login, app, monkeypatch):
        login("alice")
        monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 64)
        resp = self._upload(client, "/api/leads/upload", b"name\n" + b"A" * 500 + b"\n")
        assert resp.status_code == 413
        assert "MB limit" in resp.get_json()["error"]

