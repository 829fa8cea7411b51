from crave_ingest.cli.app import main

main()
