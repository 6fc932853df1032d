from infracat.cli import main

main()
