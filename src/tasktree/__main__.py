from tasktree.cli import main

main()
