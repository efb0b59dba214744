"""
UTILITIES PACKAGE
=================

Helpers shared by server and client (no HTTP, no business logic):

  event_stream - EventStreamDecoder: `data:` frames out of arbitrarily chunked bytes.
  retry        - with_retry(fn) and RetryController: fixed-delay retries, per-attempt deadline.
  time_info    - get_today_label(): the current date for search queries.
  attachments  - load_image_attachment(path): image file -> data URI.
"""
