"""
Built-in catalog of public demo avatars.
"""

from typing import Dict, Optional
from .session import AvatarDescriptor


AVATAR_CATALOG: Dict[str, AvatarDescriptor] = {
    avatar.avatar_id: avatar
    for avatar in (
        AvatarDescriptor(
            avatar_id="Santa_Fireplace_Front_public",
            avatar_name="Santa Fireplace Front",
            knowledge_base_id="d76e51bbcca743d6b93750eaf93c4d9b",
            voice_id="83f8d11946b24588857a491e1841c667",
            source="app",
            preview_image_url="https://files2.heygen.ai/avatar/v3/3b4e464bf15f4194b082be0e631354c6_46860/preview_target.webp",
        ),
        AvatarDescriptor(
            avatar_id="Ann_Doctor_Standing2_public",
            avatar_name="Ann Doctor Standing",
            knowledge_base_id="177ea67376364fbfb5dbc1f304f4916a",
            voice_id="2e4de8a01f3b4e9c96794045e2f12779",
            source="app",
            preview_image_url="https://files2.heygen.ai/avatar/v3/699a4c2995914d39b2cb311a930d7720_45570/preview_talk_3.webp",
        ),
        AvatarDescriptor(
            avatar_id="Judy_Teacher_Standing_public",
            avatar_name="Judy Teacher Standing",
            knowledge_base_id="cdb979191b0c4cdf974bf9c9305f9d7b",
            voice_id="7ffb69e578d4492587493c26ebcabc31",
            source="app",
            preview_image_url="https://files2.heygen.ai/avatar/v3/6cd7031aa97e496897391dd44dae56be_45630/preview_talk_1.webp",
        ),
        AvatarDescriptor(
            avatar_id="Wayne_20240711",
            avatar_name="Wayne",
            knowledge_base_id="demo-1",
            voice_id="2411aaf820874397a44530f94032bfdc",
            source="app",
            preview_image_url="https://files2.heygen.ai/avatar/v3/a3fdb0c652024f79984aaec11ebf2694_34350/preview_target.webp",
        ),
    )
}


def get_avatar(avatar_id: str) -> Optional[AvatarDescriptor]:
    """Look up a catalog avatar by id."""
    return AVATAR_CATALOG.get(avatar_id)
