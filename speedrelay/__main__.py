from speedrelay.cli import main

main()
