"""
=============================================================================
ESP WEB TOOLS MANIFESTS
=============================================================================

ESP Web Tools flashes a device from a JSON manifest listing, per chip
family, the images to write and their flash offsets:

    {
      "name": "ESPresense v3.2.1 (cam)",
      "new_install_prompt_erase": true,
      "builds": [
        {"chipFamily": "ESP32", "improv": false, "parts": [
            {"path": "/static/bootloader_esp32.bin", "offset": 4096},
            {"path": "/static/partitions.bin",       "offset": 32768},
            {"path": "/static/boot_app0.bin",        "offset": 57344},
            {"path": "download/v3.2.1/esp32-cam.bin","offset": 65536}]},
        {"chipFamily": "ESP32-C3", ...}
      ]
    }

Bootloader, partition table and boot_app0 are served statically by the
flasher site; only the firmware image comes from the proxy, as a path
relative to the manifest URL.

=============================================================================
FLAVOR MATCHING
=============================================================================

Firmware is built in flavors (cam, verbose, ...). A manifest for a flavor
picks, per chip, the first asset that exists:

    ESP32      esp32-{flavor}.bin → {flavor}.bin → esp32.bin
    ESP32-C3   esp32c3-{flavor}.bin → esp32c3.bin

Without a flavor only the plain image is considered. A chip with no
matching image is left out of "builds" entirely.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Protocol


class NamedAsset(Protocol):
    name: str


@dataclass(frozen=True)
class FlashPart:
    path: str
    offset: int

    def to_dict(self) -> dict:
        return {"path": self.path, "offset": self.offset}


@dataclass(frozen=True)
class ChipFamily:
    """
    A chip family's fixed flash layout.

    firmware_offset is where the application image goes; the other parts
    are the same for every manifest.
    """

    key: str
    chip_family: str
    static_parts: Sequence[FlashPart]
    firmware_offset: int

    def build(self, firmware_path: str) -> dict:
        parts = [part.to_dict() for part in self.static_parts]
        parts.append(FlashPart(firmware_path, self.firmware_offset).to_dict())
        return {
            "chipFamily": self.chip_family,
            "improv": False,
            "parts": parts,
        }

    def candidates(self, flavor: Optional[str]) -> List[str]:
        """Asset names to try, best match first."""
        names = []
        if flavor:
            names.append(f"{self.key}-{flavor}.bin")
            if self.key == "esp32":
                names.append(f"{flavor}.bin")
        names.append(f"{self.key}.bin")
        return names


ESP32 = ChipFamily(
    key="esp32",
    chip_family="ESP32",
    static_parts=(
        FlashPart("/static/bootloader_esp32.bin", 4096),
        FlashPart("/static/partitions.bin", 32768),
        FlashPart("/static/boot_app0.bin", 57344),
    ),
    firmware_offset=65536,
)

ESP32C3 = ChipFamily(
    key="esp32c3",
    chip_family="ESP32-C3",
    static_parts=(
        FlashPart("/static/bootloader_esp32c3.bin", 0x0000),
        FlashPart("/static/partitions_esp32c3.bin", 0x8000),
        FlashPart("/static/boot_app0.bin", 0xe000),
    ),
    firmware_offset=0x10000,
)

# Order of the "builds" array
CHIP_FAMILIES = (ESP32, ESP32C3)


def find_asset(assets: Iterable[NamedAsset], name: str) -> Optional[NamedAsset]:
    """First asset whose name is exactly name, or None."""
    for asset in assets:
        if asset.name == name:
            return asset
    return None


def select_asset(
    chip: ChipFamily,
    assets: Sequence[NamedAsset],
    flavor: Optional[str] = None,
) -> Optional[NamedAsset]:
    for name in chip.candidates(flavor):
        asset = find_asset(assets, name)
        if asset is not None:
            return asset
    return None


def manifest_name(title: str, flavor: Optional[str] = None) -> str:
    name = f"ESPresense {title}"
    if flavor:
        name += f" ({flavor})"
    return name


def build_manifest(
    title: str,
    assets: Sequence[NamedAsset],
    firmware_path: Callable[[NamedAsset], str],
    flavor: Optional[str] = None,
) -> dict:
    """
    Build a manifest from a list of release assets or run artifacts.

    Args:
        title: Release name, or "<branch> branch" for a workflow run.
        assets: Anything with a .name.
        firmware_path: Maps the chosen asset to its download path,
                       relative to the manifest URL.
        flavor: Requested flavor; None or "" means the plain image.

    Example:
        build_manifest(
            "v3.2.1", release.assets,
            lambda a: f"download/v3.2.1/{a.name}",
            flavor="cam",
        )
    """
    builds = []
    for chip in CHIP_FAMILIES:
        asset = select_asset(chip, assets, flavor)
        if asset is not None:
            builds.append(chip.build(firmware_path(asset)))

    return {
        "name": manifest_name(title, flavor),
        "new_install_prompt_erase": True,
        "builds": builds,
    }
