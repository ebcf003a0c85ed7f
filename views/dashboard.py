# views/dashboard.py

import logging

from flask import Blueprint, current_app, jsonify, request

import config
from database import get_db
from repositories.trackers_repo import count_trackers, list_dashboard_trackers
from utils.record import read_field, read_optional_float, read_text

LOGGER = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__)


def get_resolution_service():
    return current_app.extensions["resolution_service"]


def _parse_positive_int(raw, default, maximum=None):
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    if maximum is not None:
        value = min(value, maximum)
    return value


def build_page_key(status, page, page_size):
    """Identify one rendered listing so fetches queued for older pages can be dropped."""
    return f"trackers|status={status or 'all'}|page={page}|size={page_size}"


def _isoformat(value):
    return value.isoformat() if value is not None else None


def serialize_tracker(row):
    return {
        'id': read_field(row, 'id'),
        'title': read_text(row, 'title'),
        'status': read_text(row, 'status'),
        'source_key': read_text(row, 'source_key'),
        'source_name': read_text(row, 'source_name'),
        'source_item_id': read_text(row, 'source_item_id') or None,
        'source_url': read_text(row, 'source_url'),
        'last_read_chapter': read_optional_float(row, 'last_read_chapter'),
        'latest_known_chapter': read_optional_float(row, 'latest_known_chapter'),
        'latest_release_at': _isoformat(read_field(row, 'latest_release_at')),
        'last_checked_at': _isoformat(read_field(row, 'last_checked_at')),
    }


def attach_resolved_links(item, service, page_key):
    """Fill cover/chapter links from the resolution cache; never waits on upstream."""
    cover_url, cover_pending = service.resolve_or_queue_cover(
        item['source_key'], item['source_url'], item['source_item_id'], page_key
    )

    chapter = item['latest_known_chapter']
    if chapter is not None:
        chapter_url, chapter_pending = service.resolve_or_queue_chapter_url(
            item['source_key'], item['source_url'], chapter, page_key
        )
    else:
        chapter_url, chapter_pending = item['source_url'], False

    item.update({
        'cover_url': cover_url,
        'cover_pending': cover_pending,
        'latest_chapter_url': chapter_url,
        'latest_chapter_pending': chapter_pending,
    })
    return int(cover_pending) + int(chapter_pending)


@dashboard_bp.route('/api/dashboard/trackers', methods=['GET'])
def list_trackers():
    status = (request.args.get('status') or '').strip().lower()
    if status and status not in config.TRACKER_STATUSES:
        return jsonify({'success': False, 'message': 'invalid status'}), 400

    page = _parse_positive_int(request.args.get('page'), 1)
    page_size = _parse_positive_int(
        request.args.get('page_size'), config.DASHBOARD_PAGE_SIZE, config.DASHBOARD_MAX_PAGE_SIZE
    )

    service = get_resolution_service()
    page_key = build_page_key(status, page, page_size)
    service.set_active_page(page_key)

    try:
        conn = get_db()
        rows = list_dashboard_trackers(conn, status or None, page_size, (page - 1) * page_size)
        total = count_trackers(conn, status or None)
    except Exception:
        LOGGER.exception("dashboard listing failed page_key=%s", page_key)
        return jsonify({'success': False, 'message': 'database unavailable'}), 503

    trackers = []
    pending_count = 0
    for row in rows:
        item = serialize_tracker(row)
        pending_count += attach_resolved_links(item, service, page_key)
        trackers.append(item)

    return jsonify({
        'success': True,
        'page': page,
        'page_size': page_size,
        'total': total,
        'pending_count': pending_count,
        'trackers': trackers,
    })
