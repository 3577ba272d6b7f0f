"""Ad creative and ad image tools."""

from typing import Any, Dict, Optional, Tuple
import base64
import binascii
import io

from PIL import Image as PILImage, UnidentifiedImageError

from ..core.api import GraphAPIError, error_result, graph_api_tool, make_api_request
from ..core.utils import compact, logger, normalize_account_id, utc_timestamp

# Formats accepted by /adimages as-is; anything else Pillow can read is re-encoded as JPEG
PASSTHROUGH_FORMATS = {"JPEG": "image/jpeg", "PNG": "image/png", "GIF": "image/gif"}

POST_FIELDS = "id,message,created_time,story,status_type,is_published"


def decode_image_file(image_file: str, image_name: Optional[str] = None) -> Tuple[str, bytes, str]:
    """
    Decode a base64 image (raw or data URL) and normalise it for upload.

    Returns:
        (filename, image bytes, mime type)

    Raises:
        ValueError: if the payload is not base64 or not an image Pillow can read
    """
    payload = image_file.strip()
    if payload.startswith("data:"):
        payload = payload.partition(",")[2]
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("image_file is not valid base64")

    try:
        img = PILImage.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"image_file is not a readable image: {e}")

    fmt = (img.format or "").upper()
    stem = (image_name or "image").rsplit(".", 1)[0]
    if fmt in PASSTHROUGH_FORMATS:
        extension = "jpg" if fmt == "JPEG" else fmt.lower()
        return image_name or f"{stem}.{extension}", raw, PASSTHROUGH_FORMATS[fmt]

    logger.debug(f"Re-encoding {fmt or 'unknown'} image as JPEG")
    if img.mode != "RGB":
        img = img.convert("RGB")
    byte_arr = io.BytesIO()
    img.save(byte_arr, format="JPEG")
    return f"{stem}.jpg", byte_arr.getvalue(), "image/jpeg"


def _first_image(data: Dict[str, Any]) -> Dict[str, Any]:
    images = data.get("images") or {}
    if not images:
        raise GraphAPIError("Image upload succeeded but no image hash was returned", error_data=data)
    key, info = next(iter(images.items()))
    info = dict(info or {})
    info.setdefault("hash", key)
    return info


@graph_api_tool(
    name="upload-ad-image",
    description="Upload an image to an ad account's image library from a URL or a base64 file and return its hash.",
    parameters={
        "type": "object",
        "properties": {
            "account_id": {"type": "string", "description": "Ad account ID (without act_ prefix)."},
            "image_url": {"type": "string", "description": "Publicly reachable image URL."},
            "image_file": {"type": "string", "description": "Base64 encoded image, raw or as a data URL."},
            "image_name": {"type": "string", "description": "Filename for file uploads."},
            "creative_folder_id": {"type": "string", "description": "Creative folder to place the image in."},
        },
        "required": ["account_id"],
    },
)
async def upload_ad_image(account_id: str, access_token: str = None, image_url: Optional[str] = None,
                          image_file: Optional[str] = None, image_name: Optional[str] = None,
                          creative_folder_id: Optional[str] = None) -> dict:
    """
    Upload an ad image and return its hash.

    Exactly one of image_url or image_file must be given.
    """
    if bool(image_url) == bool(image_file):
        return error_result("Provide exactly one of image_url or image_file")

    endpoint = f"act_{normalize_account_id(account_id)}/adimages"
    params = compact({"creative_folder_id": creative_folder_id})

    if image_url:
        params["url"] = image_url
        data = await make_api_request(endpoint, access_token, params, method="POST")
        method = "url"
    else:
        filename, content, mime_type = decode_image_file(image_file, image_name)
        data = await make_api_request(endpoint, access_token, params, method="POST",
                                      files={"source": (filename, content, mime_type)})
        method = "file"

    image = _first_image(data)
    logger.info(f"Image uploaded to account {account_id}: {image.get('hash')}")
    return {
        "success": True,
        "image": compact({
            "hash": image.get("hash"),
            "url": image.get("url"),
            "width": image.get("width"),
            "height": image.get("height"),
            "permalink_url": image.get("permalink_url"),
        }),
        "account_id": account_id,
        "upload_method": method,
    }


async def validate_post(access_token: str, object_story_id: str) -> Dict[str, Any]:
    """Check that a page post exists and is published so it can be boosted."""
    try:
        post = await make_api_request(object_story_id, access_token, {"fields": POST_FIELDS})
    except GraphAPIError as e:
        raise ValueError(f"Post validation failed: {e.message}")
    if not post.get("is_published"):
        raise ValueError(f"Post {object_story_id} is not published and cannot be used for ads")
    return {
        "id": post.get("id"),
        "message": post.get("message") or post.get("story") or "",
        "status_type": post.get("status_type"),
        "created_time": post.get("created_time"),
    }


async def _upload_media_by_url(account_id: str, access_token: str, creative_type: str, url: str) -> str:
    endpoint = f"act_{normalize_account_id(account_id)}"
    if creative_type == "photo":
        image = _first_image(await make_api_request(f"{endpoint}/adimages", access_token, {"url": url},
                                                    method="POST"))
        return image["hash"]
    data = await make_api_request(f"{endpoint}/advideos", access_token, {"file_url": url}, method="POST")
    if not data.get("id"):
        raise GraphAPIError("Video upload returned no ID", error_data=data)
    return data["id"]


@graph_api_tool(
    name="create-ad-creative",
    description=(
        "Create an ad creative, either as a new photo/video post (creative_strategy=new_post) or by "
        "boosting an existing published page post (creative_strategy=boost_existing)."
    ),
    parameters={
        "type": "object",
        "properties": {
            "account_id": {"type": "string", "description": "Ad account ID (without act_ prefix)."},
            "page_id": {"type": "string", "description": "Facebook page the creative posts as."},
            "creative_strategy": {
                "type": "string",
                "enum": ["new_post", "boost_existing"],
                "default": "new_post",
                "description": "new_post builds a post from media; boost_existing reuses a page post.",
            },
            "post_id": {"type": "string", "description": "Post to boost (without the page prefix)."},
            "object_story_id": {"type": "string", "description": "Full <page_id>_<post_id> of the post to boost."},
            "creative_type": {"type": "string", "enum": ["photo", "video"], "default": "photo"},
            "creative_name": {"type": "string", "description": "Creative name (generated when omitted)."},
            "message": {"type": "string", "description": "Post text; required for new_post."},
            "image_hash": {"type": "string", "description": "Hash of an uploaded image."},
            "image_url": {"type": "string", "description": "Image URL to upload when no image_hash is given."},
            "video_id": {"type": "string", "description": "ID of an uploaded video."},
            "video_url": {"type": "string", "description": "Video URL to upload when no video_id is given."},
            "link_url": {"type": "string", "description": "Destination URL for the call to action."},
            "cta_type": {"type": "string", "description": "Call to action type, e.g. LEARN_MORE or SHOP_NOW."},
        },
        "required": ["account_id", "page_id"],
    },
)
async def create_ad_creative(account_id: str, page_id: str, access_token: str = None,
                             creative_strategy: str = "new_post", post_id: Optional[str] = None,
                             object_story_id: Optional[str] = None, creative_type: str = "photo",
                             creative_name: Optional[str] = None, message: Optional[str] = None,
                             image_hash: Optional[str] = None, image_url: Optional[str] = None,
                             video_id: Optional[str] = None, video_url: Optional[str] = None,
                             link_url: Optional[str] = None, cta_type: Optional[str] = None) -> dict:
    """
    Create an ad creative.

    Args:
        account_id: Ad account ID (without act_ prefix)
        page_id: Page the creative posts as
        access_token: Graph API access token
        creative_strategy: 'new_post' or 'boost_existing'
        post_id: Post to boost, without the page prefix
        object_story_id: Full page_post id to boost
        creative_type: 'photo' or 'video' (new_post only)
        creative_name: Name for the creative
        message: Post text (new_post only)
        image_hash: Uploaded image hash, or image_url to upload one
        video_id: Uploaded video id, or video_url to upload one
        link_url: Destination for the call to action
        cta_type: Call to action type
    """
    if creative_strategy not in ("new_post", "boost_existing"):
        return error_result("Invalid creative_strategy. Must be 'new_post' or 'boost_existing'")

    endpoint = f"act_{normalize_account_id(account_id)}/adcreatives"
    result: Dict[str, Any] = {"success": True}

    if creative_strategy == "boost_existing":
        if not post_id and not object_story_id:
            return error_result("Strategy 'boost_existing' requires either post_id or object_story_id")
        story_id = object_story_id or f"{page_id}_{post_id}"
        post_info = await validate_post(access_token, story_id)
        name = creative_name or f"Boost Post - {story_id.rpartition('_')[2]} - {utc_timestamp()}"
        params: Dict[str, Any] = {"name": name, "object_story_id": story_id}
        result["boosted_post"] = {"object_story_id": story_id, "post_info": post_info}
    else:
        if not message or not str(message).strip():
            return error_result("Strategy 'new_post' requires message parameter")
        if creative_type not in ("photo", "video"):
            return error_result("Invalid creative_type. Must be 'photo' or 'video'")
        if creative_type == "photo" and not image_hash and not image_url:
            return error_result("New photo creative requires either image_hash or image_url")
        if creative_type == "video" and not video_id and not video_url:
            return error_result("New video creative requires either video_id or video_url")

        if creative_type == "photo" and not image_hash:
            image_hash = await _upload_media_by_url(account_id, access_token, "photo", image_url)
        elif creative_type == "video" and not video_id:
            video_id = await _upload_media_by_url(account_id, access_token, "video", video_url)

        call_to_action = {"type": cta_type, "value": {"link": link_url}} if cta_type and link_url else None
        if creative_type == "photo":
            story_spec = {"page_id": page_id, "photo_data": compact({
                "caption": str(message), "image_hash": image_hash})}
            if link_url:
                story_spec = {"page_id": page_id, "link_data": compact({
                    "message": str(message), "link": link_url, "image_hash": image_hash,
                    "call_to_action": call_to_action})}
            result["media_info"] = {"image_hash": image_hash}
        else:
            story_spec = {"page_id": page_id, "video_data": compact({
                "video_id": video_id, "message": str(message), "call_to_action": call_to_action})}
            result["media_info"] = {"video_id": video_id}

        name = creative_name or f"New {creative_type.upper()} Creative - {utc_timestamp()}"
        params = {"name": name, "object_story_spec": story_spec}

    data = await make_api_request(endpoint, access_token, params, method="POST")
    logger.info(f"Ad creative created: {data.get('id')} ({creative_strategy})")

    result["creative"] = compact({
        "id": data.get("id"),
        "name": name,
        "strategy": creative_strategy,
        "type": creative_type if creative_strategy == "new_post" else None,
    })
    return result


TOOLS = [upload_ad_image, create_ad_creative]
