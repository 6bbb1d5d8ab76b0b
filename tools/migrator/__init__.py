"""
Kokonotsuba → vichan migrator – move imageboard posts between schemas.

Supports:
  • Migrating every mapped koko board into an existing vichan database
  • Rewriting koko comment markup into vichan HTML
  • Remapping thread numbers to the ids vichan assigns
  • Copying images and thumbnails into the vichan instance tree
  • Resumable operation via progress.json checkpoints
"""
