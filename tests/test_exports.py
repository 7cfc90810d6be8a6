from exports import export_to_csv, participant_table, render_template

from models import Participant, RegistrationStatus


def test_csv_quotes_special_cells():
    content = export_to_csv(["Name", "Note"], [["Doe, Jane", 'said "hi"'], ["Plain", "line one\nline two"]])
    assert content == (
        b'Name,Note\r\n'
        b'"Doe, Jane","said ""hi"""\r\n'
        b'Plain,"line one\nline two"\r\n'
    )


def test_nominated_table_shape():
    participant = Participant(
        id=1,
        full_name="Jane Doe",
        email="jane@college.example.com",
        mobile="9876543210",
        prn="PRN1",
        branch="Computer",
        year=3,
        college="City College",
        chest_number=101,
        registration_status=RegistrationStatus.APPROVED,
        paid_amount=50,
    )
    headers, rows = participant_table([participant], {}, "nominated")
    assert headers == ["Chest No.", "Full Name", "Contact Info", "Status"]
    assert rows == [[101, "Jane Doe", "jane@college.example.com / 9876543210", "Nominated"]]


def test_templates_escape_user_text():
    html = render_template("group_sheet.html", title="Groups <b>", groups=[])
    assert "Groups &lt;b&gt;" in html
