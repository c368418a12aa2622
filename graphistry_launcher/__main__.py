from graphistry_launcher.cli import main

main()
