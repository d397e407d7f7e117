import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

PROJECT_DIR = Path(__file__).resolve().parent.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

import vkfeat  # noqa: E402

MINI_VK_XML = """
<registry>
    <types>
        <type category="include" name="vk_platform">#include "vk_platform.h"</type>
        <type requires="vk_platform" name="uint32_t"/>
        <type category="basetype">typedef <type>uint32_t</type> <name>VkFlags</name>;</type>
        <type category="basetype">typedef <type>uint32_t</type> <name>VkBool32</name>;</type>
        <type category="define">#define <name>VK_DEFINE_HANDLE</name>(object) typedef struct object##_T* object;</type>
        <type category="handle"><type>VK_DEFINE_HANDLE</type>(<name>VkInstance</name>)</type>
        <type category="enum" name="VkStructureType"/>
        <type category="enum" name="VkResult"/>
        <type category="enum" name="VkColorComponentFlagBits"/>
        <type requires="VkColorComponentFlagBits" category="bitmask">typedef <type>VkFlags</type> <name>VkColorComponentFlags</name>;</type>
        <type category="struct" name="VkApplicationInfo">
            <member values="VK_STRUCTURE_TYPE_APPLICATION_INFO"><type>VkStructureType</type> <name>sType</name></member>
            <member>const <type>void</type>* <name>pNext</name></member>
            <member><type>uint32_t</type> <name>apiVersion</name></member>
        </type>
        <type category="struct" name="VkInstanceCreateInfo">
            <member values="VK_STRUCTURE_TYPE_INSTANCE_CREATE_INFO"><type>VkStructureType</type> <name>sType</name></member>
            <member>const <type>VkApplicationInfo</type>* <name>pApplicationInfo</name></member>
        </type>
        <type category="struct" name="VkPhysicalDeviceProperties">
            <member><type>uint32_t</type> <name>apiVersion</name></member>
            <member><type>char</type> <name>deviceName</name>[<enum>VK_MAX_PHYSICAL_DEVICE_NAME_SIZE</enum>]</member>
        </type>
        <type category="struct" name="VkPipelineColorBlendAttachmentState">
            <member><type>VkColorComponentFlags</type> <name>colorWriteMask</name></member>
        </type>
        <type category="struct" name="VkFaultData" api="vulkansc">
            <member><type>uint32_t</type> <name>faultLevel</name></member>
        </type>
    </types>
    <enums name="API Constants">
        <enum type="uint32_t" value="256" name="VK_MAX_PHYSICAL_DEVICE_NAME_SIZE"/>
    </enums>
    <enums name="VkStructureType" type="enum">
        <enum value="0" name="VK_STRUCTURE_TYPE_APPLICATION_INFO"/>
        <enum value="1" name="VK_STRUCTURE_TYPE_INSTANCE_CREATE_INFO"/>
    </enums>
    <enums name="VkResult" type="enum">
        <enum value="0" name="VK_SUCCESS"/>
        <enum value="-1" name="VK_ERROR_OUT_OF_HOST_MEMORY"/>
    </enums>
    <enums name="VkColorComponentFlagBits" type="bitmask">
        <enum bitpos="0" name="VK_COLOR_COMPONENT_R_BIT"/>
        <enum bitpos="1" name="VK_COLOR_COMPONENT_G_BIT"/>
    </enums>
    <commands>
        <command>
            <proto><type>VkResult</type> <name>vkCreateInstance</name></proto>
            <param>const <type>VkInstanceCreateInfo</type>* <name>pCreateInfo</name></param>
            <param><type>VkInstance</type>* <name>pInstance</name></param>
        </command>
        <command>
            <proto><type>void</type> <name>vkGetPhysicalDeviceProperties</name></proto>
            <param><type>VkPhysicalDeviceProperties</type>* <name>pProperties</name></param>
        </command>
    </commands>
    <feature api="vulkan,vulkansc" name="VK_VERSION_1_0" number="1.0">
        <require>
            <type name="vk_platform"/>
            <type name="VkPipelineColorBlendAttachmentState"/>
            <command name="vkCreateInstance"/>
            <enum name="VK_MAX_PHYSICAL_DEVICE_NAME_SIZE"/>
        </require>
    </feature>
    <feature api="vulkan,vulkansc" name="VK_VERSION_1_1" number="1.1" depends="VK_VERSION_1_0">
        <require>
            <enum extends="VkStructureType" extnumber="158" offset="0" name="VK_STRUCTURE_TYPE_BIND_BUFFER_MEMORY_INFO"/>
            <enum extends="VkResult" extnumber="70" offset="0" dir="-" name="VK_ERROR_OUT_OF_POOL_MEMORY"/>
            <command name="vkGetPhysicalDeviceProperties"/>
        </require>
        <require api="vulkansc">
            <type name="VkFaultData"/>
        </require>
    </feature>
    <feature api="vulkansc" name="VKSC_VERSION_1_0" number="1.0" depends="VK_VERSION_1_1">
        <require>
            <type name="VkFaultData"/>
        </require>
    </feature>
    <extensions>
        <extension name="VK_KHR_surface" number="1" supported="vulkan" depends="VK_VERSION_1_0">
            <require>
                <enum value="25" name="VK_KHR_SURFACE_SPEC_VERSION"/>
                <type name="VkSurfaceKHR"/>
                <enum offset="0" extends="VkResult" dir="-" name="VK_ERROR_SURFACE_LOST_KHR"/>
                <enum bitpos="3" extends="VkColorComponentFlagBits" name="VK_COLOR_COMPONENT_A_BIT"/>
            </require>
        </extension>
    </extensions>
</registry>
"""


@pytest.fixture
def make_registry_root() -> Callable[[str], ET.Element]:
    def _make_registry_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f"<registry>{inner_xml}</registry>")

    return _make_registry_root


@pytest.fixture
def mini_root() -> ET.Element:
    return ET.fromstring(MINI_VK_XML)


@pytest.fixture
def mini_registries(
    mini_root: ET.Element,
) -> tuple[vkfeat.TypeRegistry, vkfeat.ValueRegistry]:
    return vkfeat.load_registries(mini_root)


@pytest.fixture
def mini_vk_xml(tmp_path: Path) -> Path:
    path = tmp_path / "vk.xml"
    path.write_text(MINI_VK_XML, encoding="utf-8")
    return path


@pytest.fixture
def make_type_def() -> Callable[..., vkfeat.TypeDef]:
    def _make_type_def(
        name: str,
        *,
        category: str = "struct",
        type_refs: tuple[str, ...] = (),
        value_refs: tuple[str, ...] = (),
        alias: str | None = None,
    ) -> vkfeat.TypeDef:
        return vkfeat.TypeDef(
            name,
            category,
            type_refs=type_refs,
            value_refs=value_refs,
            alias=alias,
        )

    return _make_type_def


@pytest.fixture
def make_enum_value() -> Callable[..., vkfeat.EnumValue]:
    def _make_enum_value(
        name: str,
        type_name: str,
        *,
        value: int | None = 0,
        is_core: bool = True,
        alias: str | None = None,
    ) -> vkfeat.EnumValue:
        return vkfeat.EnumValue(
            name, type_name, value=value, is_core=is_core, alias=alias
        )

    return _make_enum_value
