from vulnfixer.cli import main

main()
