"""
Example: Managing volume and Ceph secrets with VirtSecret

Defines a LUKS passphrase for a disk image and a Ceph client key, stores
them in a private directory, and reopens the store to read them back.

Run:
    python examples/secret_workflow.py /tmp/virtsecret-demo
"""

import sys

from virtsecret import Connection
from virtsecret.core import ConfigManager, setup_logging
from virtsecret.secrets import SecretNotFoundError, UsageType


VOLUME_SECRET = """
<secret ephemeral='no' private='yes'>
  <description>LUKS passphrase for guest disk</description>
  <usage type='volume'>
    <volume>/var/lib/libvirt/images/guest.img</volume>
  </usage>
</secret>
"""

CEPH_SECRET = """
<secret ephemeral='no' private='no'>
  <usage type='ceph'>
    <name>client.libvirt secret</name>
  </usage>
</secret>
"""


def print_section(title):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}\n")


def define_secrets(config):
    print_section("Defining secrets")
    with Connection.open(config) as conn:
        volume = conn.define_secret_xml(VOLUME_SECRET)
        volume.set_value(b"correct horse battery staple")
        print(f"Volume secret: {volume.uuid}")

        ceph = conn.define_secret_xml(CEPH_SECRET)
        ceph.set_value(b"AQBx0mRfAAAAABAA7rK3C0n8jz1T3xqGqg==")
        print(f"Ceph secret:   {ceph.uuid}")
        print(ceph.xml_desc())


def read_secrets(config):
    print_section("Reopening the store")
    with Connection.open(config) as conn:
        print(f"{conn.num_of_secrets()} secrets defined")
        volume = conn.lookup_secret_by_usage(UsageType.VOLUME, "/var/lib/libvirt/images/guest.img")
        print(f"Volume passphrase is {len(volume.get_value())} bytes")

        volume.undefine()
        try:
            conn.lookup_secret_by_usage(UsageType.VOLUME, "/var/lib/libvirt/images/guest.img")
        except SecretNotFoundError as e:
            print(f"After undefine: {e.message}")

        conn.lookup_secret_by_usage("ceph", "client.libvirt secret").undefine()


def main():
    path = sys.argv[1] if len(sys.argv) > 1 else "/tmp/virtsecret-demo"
    config = ConfigManager().load(cli_overrides={
        "storage": {"type": "file", "path": path},
        "logging": {"level": "WARNING", "format": "text"},
    })
    setup_logging(level=config.logging.level, format_type=config.logging.format)

    define_secrets(config)
    read_secrets(config)


if __name__ == "__main__":
    main()
