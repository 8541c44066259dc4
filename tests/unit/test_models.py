from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from chatstore_lib.models import Chat, ChatType, Contact, Message, MessageStatus, MessageType, local_part


def test_local_part():
    assert local_part('5491112345678@s.whatsapp.net') == '5491112345678'
    assert local_part('no-at-sign') == 'no-at-sign'


def test_contact_from_raw_projects_fields():
    raw = {'id': '5491112345678@s.whatsapp.net', 'notify': 'Miguel', 'imgUrl': 'http://x/p.jpg', 'status': 'hey'}
    c = Contact.from_raw(raw)
    assert c.name == 'Miguel'
    assert c.phone == '5491112345678'
    assert c.photo == 'http://x/p.jpg'
    assert c.content == 'hey'
    assert c.raw == raw


def test_contact_from_raw_prefers_name_then_phone():
    assert Contact.from_raw({'id': '1@s.whatsapp.net', 'name': 'A', 'notify': 'B'}).name == 'A'
    c = Contact.from_raw({'id': '1@s.whatsapp.net'})
    assert c.name == '1'
    assert c.content == ''
    assert c.photo is None


def test_chat_from_id_detects_groups():
    group = Chat.from_id('120363041234567890@g.us', name='Family')
    assert group.type is ChatType.GROUP
    assert group.phone == ''
    assert group.name == 'Family'
    direct = Chat.from_id('5491112345678@s.whatsapp.net')
    assert direct.type is ChatType.CONTACT
    assert direct.phone == '5491112345678'
    assert direct.name == '5491112345678'


def test_message_defaults_and_json_round_trip():
    m = Message(id='M1', cid='c@g.us', uid='u@s.whatsapp.net', created_at=datetime(2024, 5, 1, tzinfo=timezone.utc))
    assert m.type is MessageType.TEXT
    assert m.status is MessageStatus.PENDING
    assert m.edited is False
    data = m.model_dump(mode='json')
    assert data['status'] == 0
    assert data['type'] == 'text'
    assert Message.model_validate(data) == m


def test_message_requires_identity():
    with pytest.raises(ValidationError):
        Message(id='M1', cid='c@g.us', created_at=datetime.now(timezone.utc))


def test_status_order():
    assert MessageStatus.PENDING < MessageStatus.SENT < MessageStatus.DELIVERED < MessageStatus.READ < MessageStatus.PLAYED
