"""Seed the database with a demo subscriber and enable the sub server."""

import sys

from database.connection import init_db, get_db_session
from database.models import Client, Link
from services import SettingService

DEMO_SUB_ID = "demo"

DEMO_LINKS = [
    ("vless://6f1c1a3e-0d4b-4b5e-9a57-2d1e0e3b7c11@{host}:443"
     "?type=tcp&security=reality&pbk=demoPublicKey&sid=ab12&sni=www.example.com&fp=chrome"
     "&flow=xtls-rprx-vision#demo", "Reality"),
    ("trojan://demo-password@{host}:8443?security=tls&sni={host}#demo", "Trojan"),
]


def seed_subscription(port: int = 2096):
    """Insert or update the demo client and the settings to serve it."""
    init_db()

    settings = SettingService()
    settings.set_value("subEnable", True)
    settings.set_value("subPort", port)

    with get_db_session() as db:
        client = db.query(Client).filter(Client.sub_id == DEMO_SUB_ID).first()

        if client:
            client.links.clear()
            print(f"Updated client {DEMO_SUB_ID} (id={client.id})")
        else:
            client = Client(
                sub_id=DEMO_SUB_ID,
                email="demo@example.com",
                total=50 * 1024 ** 3,
            )
            db.add(client)
            db.flush()
            print(f"Created client {DEMO_SUB_ID} (id={client.id})")

        for position, (uri, remark) in enumerate(DEMO_LINKS):
            client.links.append(Link(position=position, uri=uri, remark=remark))


if __name__ == "__main__":
    seed_subscription(int(sys.argv[1]) if len(sys.argv) > 1 else 2096)
