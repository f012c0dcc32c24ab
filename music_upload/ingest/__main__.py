from music_upload.ingest.cli import main

main()
